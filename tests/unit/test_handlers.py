"""
Unit tests for job handlers.
"""

from typing import Any

import pytest

from job_bridge.types.job import JobResult
from job_bridge.worker.handlers import (
    execute_job,
    get_handler,
    handle_default,
    handle_echo,
    list_handlers,
    register_handler,
)


class TestJobHandlers:
    """Tests for job handlers."""

    @pytest.fixture
    def payload(self) -> dict[str, Any]:
        return {"job_type": "echo", "data": {"message": "test"}}

    def test_list_handlers(self):
        """Test listing registered handlers."""
        handlers = list_handlers()

        assert "default" in handlers
        assert "echo" in handlers
        assert "sleep" in handlers
        assert "random_failure" in handlers

    def test_get_handler_exists(self):
        """Test getting an existing handler."""
        handler = get_handler("echo")
        assert handler is not None
        assert handler == handle_echo

    def test_get_handler_not_exists(self):
        """Test getting a non-existent handler."""
        handler = get_handler("nonexistent")
        assert handler is None

    @pytest.mark.asyncio
    async def test_echo_handler(self, payload: dict[str, Any]):
        """Test the echo handler."""
        result = await handle_echo(payload)

        assert result.success is True
        assert result.output == {"echo": payload}

    @pytest.mark.asyncio
    async def test_default_handler(self):
        """Test that the default handler succeeds."""
        result = await handle_default({"to": "+1555", "msg": "hi"})

        assert result.success is True

    @pytest.mark.asyncio
    async def test_execute_job_with_valid_type(self, payload: dict[str, Any]):
        """Test execute_job with a valid job type."""
        result = await execute_job(payload)

        assert result.success is True
        assert result.output == {"echo": payload}

    @pytest.mark.asyncio
    async def test_execute_job_without_type_uses_default(self):
        """Test that a payload without job_type goes to the default handler."""
        result = await execute_job({"to": "+1555", "msg": "hi"})

        assert result.success is True

    @pytest.mark.asyncio
    async def test_execute_job_with_scalar_payload(self):
        """Test that non-object payloads are accepted."""
        result = await execute_job("just a string")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_execute_job_with_invalid_type(self, payload: dict[str, Any]):
        """Test execute_job with an invalid job type."""
        payload["job_type"] = "nonexistent_handler"

        result = await execute_job(payload)

        assert result.success is False
        assert "No handler registered" in result.error

    @pytest.mark.asyncio
    async def test_random_failure_always_fails_at_rate_one(self):
        """Test the random failure handler at a failure rate of 1."""
        result = await execute_job({"job_type": "random_failure", "data": {"failure_rate": 1.0}})

        assert result.success is False

    @pytest.mark.asyncio
    async def test_handler_exception_propagates(self):
        """Test that handler exceptions reach the caller."""

        @register_handler("test_explodes")
        async def explode(payload: dict[str, Any]) -> JobResult:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await execute_job({"job_type": "test_explodes"})
