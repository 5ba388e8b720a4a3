"""
Consumer runtime.

Each consumer channel runs a small pipeline:

    broker callback -> inbox (bounded by prefetch)
                    -> dispatch task -> one handler task per delivery
                    -> results queue -> settle task (ack / nack+requeue)

Channels share nothing but the connection. The broker's prefetch limit and a
per-channel semaphore both cap unacknowledged deliveries at ``prefetch``.
A closed connection is fatal: ``run`` raises ``ConnectionLost`` so the
process supervisor can restart the worker.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from aio_pika.abc import (
    AbstractChannel,
    AbstractConnection,
    AbstractIncomingMessage,
    AbstractQueue,
)
from opentelemetry import trace

from job_bridge.broker.pool import close_channel
from job_bridge.broker.topology import Topology, declare_topology
from job_bridge.constants import SPAN_PROCESS_JOB, DeliveryOutcome
from job_bridge.exceptions import ConnectionLost, TopologyDeclarationFailed
from job_bridge.observability.metrics import get_metrics
from job_bridge.serialization import decode_payload
from job_bridge.types.job import JobResult

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Receives a decoded payload. Raising, or returning JobResult(success=False), fails the job.
JobHandler = Callable[[Any], Awaitable[Any]]


@dataclass
class Settlement:
    """Outcome of one delivery, passed from a handler task to the settle task."""

    message: AbstractIncomingMessage
    outcome: DeliveryOutcome
    duration_seconds: float
    error: str | None = None


class ChannelConsumer:
    """
    Consumes one channel with at most ``prefetch`` deliveries in flight.
    """

    def __init__(
        self,
        index: int,
        channel: AbstractChannel,
        queue: AbstractQueue,
        prefetch: int,
        handler: JobHandler,
        worker_id: str,
    ):
        self.index = index
        self.channel = channel
        self.queue = queue
        self.prefetch = prefetch
        self._handler = handler
        self._worker_id = worker_id

        self._inbox: asyncio.Queue[AbstractIncomingMessage] = asyncio.Queue(maxsize=prefetch)
        self._results: asyncio.Queue[Settlement] = asyncio.Queue()
        self._slots = asyncio.Semaphore(prefetch)
        self._handlers: set[asyncio.Task] = set()
        self._tasks: list[asyncio.Task] = []
        self._consumer_tag: str | None = None
        self._invalid = False
        self._metrics = get_metrics()

        self.in_flight = 0
        self.max_in_flight = 0

    async def start(self) -> None:
        """Start the pipeline tasks and subscribe to the queue."""
        self._tasks = [
            asyncio.create_task(self._dispatch_loop()),
            asyncio.create_task(self._settle_loop()),
        ]
        self._consumer_tag = await self.queue.consume(self._on_delivery, no_ack=False)

    def invalidate(self) -> None:
        """Mark the channel unusable after the connection closed."""
        self._invalid = True

    async def stop(self, drain: bool = True) -> None:
        """
        Stop consuming.

        Args:
            drain: Wait for in-flight handlers and settle their deliveries
                before tearing the pipeline down.
        """
        if self._consumer_tag is not None and not self._invalid:
            try:
                await self.queue.cancel(self._consumer_tag)
            except Exception:
                logger.exception("Failed to cancel consumer", extra={"channel": self.index})
        self._consumer_tag = None

        if drain and not self._invalid:
            if self._handlers:
                await asyncio.gather(*self._handlers, return_exceptions=True)
            await self._results.join()

        for task in [*self._tasks, *self._handlers]:
            task.cancel()
        await asyncio.gather(*self._tasks, *self._handlers, return_exceptions=True)
        self._tasks = []

    async def _on_delivery(self, message: AbstractIncomingMessage) -> None:
        await self._inbox.put(message)

    async def _dispatch_loop(self) -> None:
        while True:
            message = await self._inbox.get()
            await self._slots.acquire()

            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

            task = asyncio.create_task(self._process(message))
            self._handlers.add(task)
            task.add_done_callback(self._handlers.discard)

    async def _process(self, message: AbstractIncomingMessage) -> None:
        start_time = time.perf_counter()

        with tracer.start_as_current_span(SPAN_PROCESS_JOB) as span:
            span.set_attribute("channel", self.index)
            span.set_attribute("redelivered", bool(message.redelivered))

            try:
                payload = decode_payload(message.body)
                result = await self._handler(payload)
            except Exception as e:
                span.record_exception(e)
                settlement = Settlement(
                    message=message,
                    outcome=DeliveryOutcome.REQUEUED,
                    duration_seconds=time.perf_counter() - start_time,
                    error=f"{type(e).__name__}: {e}",
                )
            else:
                if isinstance(result, JobResult) and not result.success:
                    settlement = Settlement(
                        message=message,
                        outcome=DeliveryOutcome.REQUEUED,
                        duration_seconds=time.perf_counter() - start_time,
                        error=result.error or "Unknown error",
                    )
                else:
                    settlement = Settlement(
                        message=message,
                        outcome=DeliveryOutcome.ACKED,
                        duration_seconds=time.perf_counter() - start_time,
                    )

            span.set_attribute("outcome", settlement.outcome.value)

        await self._results.put(settlement)

    async def _settle_loop(self) -> None:
        while True:
            settlement = await self._results.get()
            try:
                await self._settle(settlement)
            finally:
                self.in_flight -= 1
                self._slots.release()
                self._results.task_done()

    async def _settle(self, settlement: Settlement) -> None:
        message = settlement.message

        if self._invalid:
            logger.warning(
                "Connection closed, delivery left for redelivery",
                extra={"channel": self.index, "delivery_tag": message.delivery_tag},
            )
            return

        try:
            if settlement.outcome == DeliveryOutcome.ACKED:
                await message.ack()
            else:
                logger.error(
                    "Error processing job",
                    extra={
                        "channel": self.index,
                        "delivery_tag": message.delivery_tag,
                        "error": settlement.error,
                    },
                )
                await message.nack(requeue=True)
        except Exception:
            logger.exception(
                "Failed to settle delivery",
                extra={"channel": self.index, "outcome": settlement.outcome.value},
            )
            return

        self._metrics.record_job_processed(
            worker_id=self._worker_id,
            outcome=settlement.outcome.value,
            duration_seconds=settlement.duration_seconds,
        )


class ConsumerRuntime:
    """
    Worker main loop over ``pool_size`` consumer channels.
    """

    def __init__(
        self,
        connection: AbstractConnection,
        topology: Topology,
        pool_size: int,
        prefetch: int,
        handler: JobHandler,
        worker_id: str = "worker",
    ):
        """
        Initialize the runtime.

        Args:
            connection: Open broker connection, owned by the caller.
            topology: Exchange/queue/binding, identical to the producer's.
            pool_size: Number of consumer channels.
            prefetch: Unacknowledged deliveries allowed per channel.
            handler: Job handler invoked with each decoded payload.
            worker_id: Identity used in logs and metrics.
        """
        self.connection = connection
        self.topology = topology
        self.pool_size = pool_size
        self.prefetch = prefetch
        self.worker_id = worker_id
        self._handler = handler

        self.consumers: list[ChannelConsumer] = []
        self._stopping = asyncio.Event()
        self._lost = asyncio.Event()
        self._lost_reason: BaseException | None = None
        self._metrics = get_metrics()

    async def start(self) -> None:
        """
        Open the consumer channels and begin consuming.

        All or nothing: if any channel fails, the channels already consuming
        are stopped and closed before the error propagates.

        Raises:
            TopologyDeclarationFailed: A channel could not be set up.
        """
        self.connection.close_callbacks.add(self._on_connection_close)

        for index in range(self.pool_size):
            channel: AbstractChannel | None = None
            try:
                channel = await self.connection.channel()
                _, queue = await declare_topology(channel, self.topology)
                await channel.set_qos(prefetch_count=self.prefetch)

                consumer = ChannelConsumer(
                    index=index,
                    channel=channel,
                    queue=queue,
                    prefetch=self.prefetch,
                    handler=self._handler,
                    worker_id=self.worker_id,
                )
                self.consumers.append(consumer)
                await consumer.start()
            except Exception as e:
                logger.error(
                    "Consumer channel setup failed",
                    extra={"channel": index, "error": str(e)},
                )
                if channel is not None and not any(c.channel is channel for c in self.consumers):
                    await close_channel(channel, index)
                await self._shutdown(drain=False)
                self.connection.close_callbacks.remove(self._on_connection_close)
                raise TopologyDeclarationFailed(
                    self.topology.exchange, self.topology.queue, index
                ) from e

        self._metrics.set_pool_size("consumer", len(self.consumers))
        logger.info(
            f"Worker started with {self.pool_size} channels, waiting for messages...",
            extra={"worker_id": self.worker_id, "prefetch": self.prefetch},
        )

    async def run(self) -> None:
        """
        Consume until ``stop()`` is called.

        Raises:
            ConnectionLost: The broker connection closed.
        """
        await self.start()

        stop_wait = asyncio.create_task(self._stopping.wait())
        lost_wait = asyncio.create_task(self._lost.wait())
        try:
            await asyncio.wait({stop_wait, lost_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_wait.cancel()
            lost_wait.cancel()

        if self._lost.is_set():
            await self._shutdown(drain=False)
            raise ConnectionLost("Worker connection closed") from self._lost_reason

        await self._shutdown(drain=True)

    async def stop(self) -> None:
        """Request a graceful stop of ``run``."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._stopping.set()

    def _on_connection_close(self, sender: Any, exc: BaseException | None = None) -> None:
        if self._stopping.is_set():
            return

        logger.warning(
            "Worker connection closed. Exiting...",
            extra={"worker_id": self.worker_id, "error": str(exc) if exc else None},
        )
        for consumer in self.consumers:
            consumer.invalidate()
        self._lost_reason = exc
        self._lost.set()

    async def _shutdown(self, drain: bool) -> None:
        for consumer in self.consumers:
            await consumer.stop(drain=drain)
        self._metrics.set_pool_size("consumer", 0)

        for consumer in self.consumers:
            await close_channel(consumer.channel, consumer.index)

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})
