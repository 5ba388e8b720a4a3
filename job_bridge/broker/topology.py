"""
Exchange, queue and binding declaration.

The producer's channel pool and the consumer's channels both call
``declare_topology`` with the same ``Topology``, so messages route correctly
no matter which side starts first. Redeclaring identical durable entities is
a no-op on the broker.
"""

import logging
from dataclasses import dataclass

from aio_pika import ExchangeType
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractQueue

from job_bridge.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Topology:
    """Names of the exchange, queue and routing key that carry jobs."""

    exchange: str
    queue: str
    routing_key: str

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "Topology":
        settings = settings or get_settings()
        return cls(
            exchange=settings.exchange,
            queue=settings.consumer_queue,
            routing_key=settings.routing_key,
        )


async def declare_topology(
    channel: AbstractChannel,
    topology: Topology,
) -> tuple[AbstractExchange, AbstractQueue]:
    """
    Declare the durable direct exchange and queue, and bind them.

    Args:
        channel: Channel to declare on.
        topology: Names to declare.

    Returns:
        The declared exchange and queue.
    """
    exchange = await channel.declare_exchange(
        topology.exchange,
        ExchangeType.DIRECT,
        durable=True,
    )
    queue = await channel.declare_queue(topology.queue, durable=True)
    await queue.bind(exchange, routing_key=topology.routing_key)

    logger.debug(
        "Topology declared",
        extra={
            "exchange": topology.exchange,
            "queue": topology.queue,
            "routing_key": topology.routing_key,
        },
    )
    return exchange, queue
