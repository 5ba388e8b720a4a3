"""
Integration tests for the producer -> broker -> worker path.
"""

import asyncio
import os
from typing import Any

import httpx
import pytest

from job_bridge.broker.connection import ConnectionManager
from job_bridge.broker.publisher import Publisher
from job_bridge.broker.readiness import ReadinessProber
from job_bridge.config import Settings
from job_bridge.exceptions import ConnectionLost, NotReady
from job_bridge.types.job import JobResult
from job_bridge.worker.main import Worker
from tests.fakes import FakeBroker


def ready_prober(status_code: int = 200) -> ReadinessProber:
    """Prober backed by a transport that always answers ``status_code``."""
    return ReadinessProber(
        "http://rabbitmq.test:15672/api/overview",
        "guest",
        "guest",
        transport=httpx.MockTransport(lambda request: httpx.Response(status_code)),
    )


class CollectingHandler:
    """Handler that records payloads, optionally failing the first attempt."""

    def __init__(self, fail_first: bool = False):
        self.payloads: list[Any] = []
        self._fail_next = fail_first

    async def __call__(self, payload: Any) -> JobResult:
        self.payloads.append(payload)
        if self._fail_next:
            self._fail_next = False
            raise RuntimeError("transient failure")
        return JobResult(success=True)


class TestWorkerIntegration:
    """Integration tests for worker job processing."""

    async def start_worker(
        self,
        test_settings: Settings,
        broker: FakeBroker,
        handler: CollectingHandler,
    ) -> tuple[Worker, asyncio.Task]:
        worker = Worker(
            settings=test_settings,
            handler=handler,
            prober=ready_prober(),
            connector=broker.connect,
        )
        task = asyncio.create_task(worker.start())
        await broker.wait_until(
            lambda: worker.runtime is not None
            and len(worker.runtime.consumers) == test_settings.max_channels
        )
        return worker, task

    @pytest.mark.asyncio
    async def test_published_job_is_processed_once(
        self,
        test_settings: Settings,
        broker: FakeBroker,
        connection_manager: ConnectionManager,
        sample_job_payload: dict[str, Any],
    ):
        """Test that a published job reaches the handler unchanged and is acked."""
        handler = CollectingHandler()
        worker, task = await self.start_worker(test_settings, broker, handler)

        await connection_manager.connect()
        publisher = Publisher(connection_manager.context, test_settings)
        await publisher.publish(sample_job_payload)

        queue = broker.queue(test_settings.consumer_queue)
        await broker.wait_until(lambda: len(queue.acked) == 1)

        await worker.stop()
        await task

        assert handler.payloads == [sample_job_payload]
        assert queue.requeued == []
        assert not queue.messages

    @pytest.mark.asyncio
    async def test_failed_job_is_redelivered(
        self,
        test_settings: Settings,
        broker: FakeBroker,
        connection_manager: ConnectionManager,
        sample_job_payload: dict[str, Any],
    ):
        """Test that a failure requeues the job and a later attempt succeeds."""
        handler = CollectingHandler(fail_first=True)
        worker, task = await self.start_worker(test_settings, broker, handler)

        await connection_manager.connect()
        await Publisher(connection_manager.context, test_settings).publish(sample_job_payload)

        queue = broker.queue(test_settings.consumer_queue)
        await broker.wait_until(lambda: len(queue.acked) == 1)

        await worker.stop()
        await task

        assert handler.payloads == [sample_job_payload, sample_job_payload]
        assert len(queue.requeued) == 1

    @pytest.mark.asyncio
    async def test_jobs_published_before_worker_starts(
        self,
        test_settings: Settings,
        broker: FakeBroker,
        connection_manager: ConnectionManager,
    ):
        """Test that the producer's declarations let jobs wait for a worker."""
        await connection_manager.connect()
        publisher = Publisher(connection_manager.context, test_settings)
        for i in range(10):
            await publisher.publish({"n": i})

        handler = CollectingHandler()
        worker, task = await self.start_worker(test_settings, broker, handler)

        queue = broker.queue(test_settings.consumer_queue)
        await broker.wait_until(lambda: len(queue.acked) == 10)

        await worker.stop()
        await task

        assert sorted(payload["n"] for payload in handler.payloads) == list(range(10))

    @pytest.mark.asyncio
    async def test_worker_exits_on_connection_loss(
        self,
        test_settings: Settings,
        broker: FakeBroker,
    ):
        """Test that the worker does not reconnect on its own."""
        worker, task = await self.start_worker(test_settings, broker, CollectingHandler())

        broker.last_connection.simulate_close(ConnectionResetError("broker restarted"))

        with pytest.raises(ConnectionLost):
            await task

        assert broker.connect_attempts == 1

    @pytest.mark.asyncio
    async def test_worker_waits_for_readiness(
        self,
        test_settings: Settings,
        broker: FakeBroker,
    ):
        """Test that the worker never connects if the broker never becomes ready."""
        worker = Worker(
            settings=test_settings,
            handler=CollectingHandler(),
            prober=ready_prober(503),
            connector=broker.connect,
        )

        with pytest.raises(NotReady):
            await worker.start()

        assert broker.connect_attempts == 0

    def test_worker_id_default(self, test_settings: Settings):
        """Test that the worker id falls back to host and pid."""
        settings = test_settings.model_copy(update={"worker_id": None})

        worker = Worker(settings=settings, prober=ready_prober())

        assert worker.worker_id.endswith(f"-{os.getpid()}")
