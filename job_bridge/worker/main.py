"""
Worker process for consuming jobs.

The worker waits for the broker management API to report ready, opens one
connection, and consumes the job queue on several channels until it is
stopped. A lost connection ends the process with a non-zero status so the
process supervisor restarts it cleanly.
"""

import asyncio
import logging
import os
import signal
import sys

from aio_pika.exceptions import AMQPError

from job_bridge.broker.connection import Connector, open_connection
from job_bridge.broker.consumer import ConsumerRuntime, JobHandler
from job_bridge.broker.readiness import ReadinessProber
from job_bridge.broker.topology import Topology
from job_bridge.config import Settings, get_settings
from job_bridge.exceptions import JobBridgeError
from job_bridge.observability.logging import bind_context, setup_logging
from job_bridge.observability.metrics import setup_metrics
from job_bridge.observability.tracing import setup_tracing
from job_bridge.worker.handlers import execute_job

logger = logging.getLogger(__name__)


class Worker:
    """
    Job worker that consumes from RabbitMQ.

    Features:
    - Readiness polling before connecting
    - Several consumer channels with a per-channel prefetch limit
    - Ack on success, nack with requeue on failure
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        settings: Settings | None = None,
        handler: JobHandler | None = None,
        prober: ReadinessProber | None = None,
        connector: Connector | None = None,
    ):
        """
        Initialize the worker.

        Args:
            settings: Application settings. Defaults to the cached settings.
            handler: Job handler. Defaults to the handler registry.
            prober: Readiness prober. Built from settings by default.
            connector: Coroutine opening a connection from a URL.
        """
        self.settings = settings or get_settings()
        self.worker_id = self.settings.worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self._handler = handler or execute_job
        self._prober = prober or ReadinessProber.from_settings(self.settings)
        self._connector = connector
        self.runtime: ConsumerRuntime | None = None
        self._stop_requested = False

    async def start(self) -> None:
        """
        Run the worker until stopped.

        Raises:
            NotReady: The broker never became ready.
            TopologyDeclarationFailed: A consumer channel could not be set up.
            ConnectionLost: The connection closed while consuming.
        """
        logger.info("Worker starting", extra={"worker_id": self.worker_id})

        await self._prober.wait_ready(
            self.settings.ready_max_retries,
            self.settings.ready_retry_delay_seconds,
        )

        connection = await open_connection(self.settings, self._connector)
        try:
            self.runtime = ConsumerRuntime(
                connection=connection,
                topology=Topology.from_settings(self.settings),
                pool_size=self.settings.max_channels,
                prefetch=self.settings.prefetch,
                handler=self._handler,
                worker_id=self.worker_id,
            )
            if self._stop_requested:
                await self.runtime.stop()
            await self.runtime.run()
        finally:
            if not connection.is_closed:
                await connection.close()

    async def stop(self) -> None:
        """Stop the worker gracefully."""
        self._stop_requested = True
        if self.runtime is not None:
            await self.runtime.stop()


async def run_async() -> int:
    """
    Run the worker asynchronously.

    Returns:
        Process exit status.
    """
    setup_logging(role="worker")
    setup_metrics()
    setup_tracing(role="worker")

    worker = Worker()
    bind_context(worker_id=worker.worker_id)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    try:
        await worker.start()
    except (JobBridgeError, AMQPError, OSError) as e:
        logger.critical(f"Worker terminated: {e}", extra={"worker_id": worker.worker_id})
        return 1

    return 0


def run() -> None:
    """Run the worker."""
    sys.exit(asyncio.run(run_async()))


if __name__ == "__main__":
    run()
