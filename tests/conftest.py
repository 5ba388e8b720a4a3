"""
Pytest configuration and shared fixtures.

Broker-facing tests run against the in-memory broker in ``tests/fakes.py``;
no RabbitMQ server is needed.
"""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from job_bridge.api.main import create_app
from job_bridge.broker.connection import ConnectionManager
from job_bridge.broker.topology import Topology
from job_bridge.config import Settings
from tests.fakes import FakeBroker


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with short delays and a small pool."""
    return Settings(
        rabbitmq_host="rabbitmq.test",
        max_channels=3,
        prefetch=2,
        connect_max_retries=3,
        connect_retry_delay_seconds=0.01,
        connect_max_retry_delay_seconds=0.05,
        publish_retry_delay_seconds=0.01,
        publish_flow_timeout_seconds=0.05,
        ready_max_retries=3,
        ready_retry_delay_seconds=0.0,
        worker_id="test-worker",
        worker_simulated_work_ms=0,
        log_level="DEBUG",
        log_format="console",
    )


@pytest.fixture
def topology(test_settings: Settings) -> Topology:
    return Topology.from_settings(test_settings)


@pytest.fixture
def broker() -> FakeBroker:
    """Create an empty in-memory broker."""
    return FakeBroker()


@pytest_asyncio.fixture
async def connection_manager(
    test_settings: Settings,
    broker: FakeBroker,
) -> AsyncGenerator[ConnectionManager]:
    """Create a connection manager bound to the in-memory broker (not connected)."""
    manager = ConnectionManager(test_settings, connector=broker.connect)

    yield manager

    await manager.close()


@pytest_asyncio.fixture
async def app(connection_manager: ConnectionManager) -> AsyncGenerator[FastAPI]:
    """Create a FastAPI app with a connected channel pool."""
    # ASGITransport does not run the lifespan, so connect here
    await connection_manager.connect()

    app = create_app(connection_manager)
    yield app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_job_payload() -> dict[str, Any]:
    """Create a sample job payload."""
    return {"to": "+1555", "msg": "hi"}
