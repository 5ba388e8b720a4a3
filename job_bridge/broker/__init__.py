"""
Broker module.
Contains the RabbitMQ connection manager, channel pool, publisher,
consumer runtime and readiness probe.
"""

from job_bridge.broker.connection import ConnectionManager, open_connection
from job_bridge.broker.consumer import ChannelConsumer, ConsumerRuntime, JobHandler
from job_bridge.broker.context import BrokerContext
from job_bridge.broker.pool import PooledChannel, close_pool, init_pool
from job_bridge.broker.publisher import Publisher
from job_bridge.broker.readiness import ReadinessProber
from job_bridge.broker.topology import Topology, declare_topology

__all__ = [
    "BrokerContext",
    "ChannelConsumer",
    "ConnectionManager",
    "ConsumerRuntime",
    "JobHandler",
    "PooledChannel",
    "Publisher",
    "ReadinessProber",
    "Topology",
    "close_pool",
    "declare_topology",
    "init_pool",
    "open_connection",
]
