"""
Pool of publish channels multiplexed over one broker connection.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange
from pamqp.commands import Basic

from job_bridge.broker.topology import Topology, declare_topology
from job_bridge.constants import PAYLOAD_CONTENT_TYPE
from job_bridge.exceptions import PublishRejected, TopologyDeclarationFailed

logger = logging.getLogger(__name__)


@dataclass
class PooledChannel:
    """
    One slot of the channel pool.

    Channels are opened with publisher confirms so a publish can tell a
    confirmed message apart from one still sitting in the outbound path.
    """

    index: int
    channel: AbstractChannel
    exchange: AbstractExchange
    routing_key: str
    _pending: set[asyncio.Future] = field(default_factory=set, repr=False)

    @property
    def pending(self) -> int:
        """Publishes that outlived their flow timeout and are still unconfirmed."""
        return len(self._pending)

    async def publish(self, body: bytes, flow_timeout: float) -> bool:
        """
        Publish a persistent message under the pool's routing key.

        Args:
            body: Serialized payload.
            flow_timeout: Seconds to wait for the broker confirmation.

        Returns:
            True if the broker confirmed in time. False if the publish is
            still in flight after ``flow_timeout`` (backpressure); it keeps
            going in the background.

        Raises:
            PublishRejected: The broker nacked the message.
            Exception: Whatever the AMQP client raised for the publish.
        """
        message = Message(
            body,
            content_type=PAYLOAD_CONTENT_TYPE,
            delivery_mode=DeliveryMode.PERSISTENT,
        )
        confirmation = asyncio.ensure_future(
            self.exchange.publish(message, routing_key=self.routing_key)
        )

        try:
            result = await asyncio.wait_for(asyncio.shield(confirmation), timeout=flow_timeout)
        except asyncio.TimeoutError:
            self._pending.add(confirmation)
            confirmation.add_done_callback(self._on_late_confirmation)
            return False

        if isinstance(result, Basic.Nack):
            raise PublishRejected(f"Broker rejected message on channel {self.index}")
        return True

    def _on_late_confirmation(self, confirmation: asyncio.Future) -> None:
        self._pending.discard(confirmation)
        if confirmation.cancelled():
            return

        error = confirmation.exception()
        if error is not None:
            logger.error(
                "Delayed publish failed",
                exc_info=error,
                extra={"channel": self.index},
            )
        elif isinstance(confirmation.result(), Basic.Nack):
            logger.error("Delayed publish rejected by broker", extra={"channel": self.index})


async def init_pool(
    connection: AbstractConnection,
    size: int,
    topology: Topology,
) -> list[PooledChannel]:
    """
    Open ``size`` channels and declare the topology on each.

    The pool is all or nothing: on any failure the channels opened so far are
    closed and ``TopologyDeclarationFailed`` is raised.

    Args:
        connection: Open broker connection.
        size: Number of channels.
        topology: Exchange/queue/binding to declare.

    Returns:
        The full pool, indexed 0..size-1.
    """
    pool: list[PooledChannel] = []

    for index in range(size):
        channel: AbstractChannel | None = None
        try:
            channel = await connection.channel(publisher_confirms=True)
            exchange, _ = await declare_topology(channel, topology)
        except Exception as e:
            logger.error(
                "Channel pool initialization failed",
                extra={"channel": index, "error": str(e)},
            )
            await close_pool(pool)
            if channel is not None:
                await close_channel(channel, index)
            raise TopologyDeclarationFailed(topology.exchange, topology.queue, index) from e

        pool.append(
            PooledChannel(
                index=index,
                channel=channel,
                exchange=exchange,
                routing_key=topology.routing_key,
            )
        )

    logger.info("Channel pool created", extra={"size": len(pool)})
    return pool


async def close_pool(pool: list[PooledChannel]) -> None:
    """Close every channel of a pool, logging channels that fail to close."""
    for pooled in pool:
        await close_channel(pooled.channel, pooled.index)


async def close_channel(channel: AbstractChannel, index: int) -> None:
    """Close a channel unless it is already closed, logging a failed close."""
    try:
        if not channel.is_closed:
            await channel.close()
    except Exception:
        logger.exception("Failed to close channel", extra={"channel": index})
