"""
Broker connection management.

``ConnectionManager`` owns the producer's single connection: it connects with
bounded retries and backoff, builds the channel pool, and reconnects in a
supervised background task when the broker closes the connection.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import aio_pika
from aio_pika.abc import AbstractConnection

from job_bridge.broker.context import BrokerContext
from job_bridge.broker.pool import close_pool, init_pool
from job_bridge.broker.topology import Topology
from job_bridge.config import Settings, get_settings
from job_bridge.constants import ConnectionState
from job_bridge.exceptions import ConnectionExhausted, TopologyDeclarationFailed
from job_bridge.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

# Opens a connection from an AMQP URL (aio_pika.connect or a test double)
Connector = Callable[[str], Awaitable[AbstractConnection]]


async def open_connection(
    settings: Settings | None = None,
    connector: Connector | None = None,
) -> AbstractConnection:
    """
    Open a single broker connection without retries.

    Used by the consumer role, which leaves restarts to its supervisor.
    """
    settings = settings or get_settings()
    connector = connector or aio_pika.connect
    connection = await connector(settings.rabbitmq_url)
    logger.info(
        "RabbitMQ connected",
        extra={"host": settings.rabbitmq_host, "port": settings.rabbitmq_port},
    )
    return connection


class ConnectionManager:
    """
    Producer-side connection owner.

    Features:
    - Bounded connect retries with capped exponential backoff
    - All-or-nothing channel pool built on every successful connect
    - Background reconnect after the connection closes
    - No reconnect after an intentional ``close()``
    """

    def __init__(
        self,
        settings: Settings | None = None,
        connector: Connector | None = None,
        context: BrokerContext | None = None,
    ):
        """
        Initialize the manager.

        Args:
            settings: Application settings. Defaults to the cached settings.
            connector: Coroutine opening a connection from a URL.
            context: Broker state to populate. A fresh one is created by default.
        """
        self._settings = settings or get_settings()
        self._connector = connector or aio_pika.connect
        self.context = context or BrokerContext(
            topology=Topology.from_settings(self._settings),
            pool_size=self._settings.max_channels,
        )
        self.reconnect_task: asyncio.Task | None = None
        self._closing = False
        self._metrics = get_metrics()

    @property
    def settings(self) -> Settings:
        return self._settings

    async def connect(
        self,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> AbstractConnection:
        """
        Connect to the broker and build the channel pool.

        Args:
            max_retries: Number of connect attempts.
            retry_delay: Seconds before the second attempt; later waits grow
                by ``connect_backoff_factor`` up to ``connect_max_retry_delay_seconds``.

        Returns:
            The open connection. ``context.pool`` is full when this returns.

        Raises:
            ConnectionExhausted: Every attempt failed.
            TopologyDeclarationFailed: A declaration failed on a live connection.
                A connection that closes while the pool is built counts as a
                failed attempt instead.
        """
        if max_retries is None:
            max_retries = self._settings.connect_max_retries
        if retry_delay is None:
            retry_delay = self._settings.connect_retry_delay_seconds

        self._closing = False
        delay = retry_delay

        for attempt in range(1, max_retries + 1):
            self.context.connect_attempts += 1
            try:
                connection = await self._connector(self._settings.rabbitmq_url)
                pool = await init_pool(connection, self.context.pool_size, self.context.topology)
            except TopologyDeclarationFailed as e:
                # A declaration refused on a live connection is a configuration error
                if not connection.is_closed:
                    await connection.close()
                    raise
                error: Exception = e.__cause__ or e
            except Exception as e:
                error = e
            else:
                self._watch(connection, retry_delay)
                self.context.attach(connection, pool)
                self._metrics.set_pool_size("producer", len(pool))

                logger.info(
                    "RabbitMQ connected, channel pool created",
                    extra={"attempt": attempt, "pool_size": len(pool)},
                )
                return connection

            self.context.state = ConnectionState.ERROR
            self._metrics.record_connect_failure()
            logger.error(
                f"Failed to connect to RabbitMQ. Retry {attempt}/{max_retries}",
                extra={"attempt": attempt, "error": str(error)},
            )
            if attempt < max_retries:
                await asyncio.sleep(delay)
                delay = min(
                    delay * self._settings.connect_backoff_factor,
                    self._settings.connect_max_retry_delay_seconds,
                )

        raise ConnectionExhausted(max_retries)

    def _watch(self, connection: AbstractConnection, retry_delay: float) -> None:
        """Register the close observer for one connection."""

        def on_close(sender: Any, exc: BaseException | None = None) -> None:
            self._handle_close(connection, exc, retry_delay)

        connection.close_callbacks.add(on_close)

    def _handle_close(
        self,
        connection: AbstractConnection,
        exc: BaseException | None,
        retry_delay: float,
    ) -> None:
        if connection is not self.context.connection:
            return

        if exc is not None and not isinstance(exc, asyncio.CancelledError):
            logger.error("RabbitMQ connection error", exc_info=exc)
            self.context.detach(ConnectionState.ERROR)
        else:
            self.context.detach(ConnectionState.CLOSED)
        self._metrics.set_pool_size("producer", 0)

        if self._closing:
            return

        logger.warning("RabbitMQ connection closed. Reconnecting...")
        if self.reconnect_task is None or self.reconnect_task.done():
            self.reconnect_task = asyncio.create_task(self._reconnect(retry_delay))

    async def _reconnect(self, retry_delay: float) -> None:
        """Wait ``retry_delay`` and run a fresh ``connect``."""
        await asyncio.sleep(retry_delay)
        try:
            await self.connect(retry_delay=retry_delay)
        except (ConnectionExhausted, TopologyDeclarationFailed):
            self.context.failed = True
            logger.critical("RabbitMQ reconnect failed, giving up", exc_info=True)
            return

        self.context.reconnects += 1
        self._metrics.record_reconnect()
        logger.info("RabbitMQ reconnected", extra={"reconnects": self.context.reconnects})

    async def close(self) -> None:
        """Cancel any pending reconnect and close the connection."""
        self._closing = True

        if self.reconnect_task is not None and not self.reconnect_task.done():
            self.reconnect_task.cancel()
            try:
                await self.reconnect_task
            except asyncio.CancelledError:
                pass

        connection = self.context.connection
        pool = self.context.pool
        self.context.detach(ConnectionState.CLOSED)
        self._metrics.set_pool_size("producer", 0)

        if connection is not None and not connection.is_closed:
            await close_pool(pool)
            await connection.close()
            logger.info("RabbitMQ connection closed")
