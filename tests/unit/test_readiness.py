"""
Unit tests for the broker readiness probe.
"""

import base64

import httpx
import pytest

from job_bridge.broker.readiness import ReadinessProber
from job_bridge.config import Settings
from job_bridge.exceptions import NotReady

MANAGEMENT_URL = "http://rabbitmq.test:15672/api/overview"


class TestReadinessProber:
    """Tests for ReadinessProber."""

    def make_prober(self, responses: list) -> tuple[ReadinessProber, list[httpx.Request]]:
        """Build a prober whose transport replays ``responses`` in order."""
        requests: list[httpx.Request] = []
        pending = iter(responses)

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            response = next(pending)
            if isinstance(response, Exception):
                raise response
            return httpx.Response(response)

        prober = ReadinessProber(
            MANAGEMENT_URL,
            "guest",
            "s3cret",
            transport=httpx.MockTransport(handler),
        )
        return prober, requests

    def test_from_settings(self, test_settings: Settings):
        """Test that the management URL and credentials come from settings."""
        prober = ReadinessProber.from_settings(test_settings)

        assert prober.url == MANAGEMENT_URL

    @pytest.mark.asyncio
    async def test_ready_on_first_probe(self):
        """Test that a 200 returns immediately with basic auth."""
        prober, requests = self.make_prober([200])

        await prober.wait_ready(max_retries=3, delay=0)

        assert len(requests) == 1
        expected = base64.b64encode(b"guest:s3cret").decode()
        assert requests[0].headers["Authorization"] == f"Basic {expected}"
        assert str(requests[0].url) == MANAGEMENT_URL

    @pytest.mark.asyncio
    async def test_retries_until_ready(self):
        """Test that non-2xx answers and network errors are retried."""
        prober, requests = self.make_prober(
            [503, httpx.ConnectError("connection refused"), 200]
        )

        await prober.wait_ready(max_retries=5, delay=0)

        assert len(requests) == 3

    @pytest.mark.asyncio
    async def test_not_ready_after_max_retries(self):
        """Test that NotReady is raised once every probe failed."""
        prober, requests = self.make_prober([401, 503, 500])

        with pytest.raises(NotReady) as exc_info:
            await prober.wait_ready(max_retries=3, delay=0)

        assert exc_info.value.attempts == 3
        assert len(requests) == 3
