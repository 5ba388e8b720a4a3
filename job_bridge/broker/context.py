"""
Broker state owned by the process root.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from aio_pika.abc import AbstractConnection

from job_bridge.broker.topology import Topology
from job_bridge.constants import ConnectionState

if TYPE_CHECKING:
    from job_bridge.broker.pool import PooledChannel


@dataclass
class BrokerContext:
    """
    Connection and channel pool shared by the producer components.

    The pool list is swapped wholesale by ``attach``/``detach`` and never
    mutated in place, so readers can pick from it without locking.
    """

    topology: Topology
    pool_size: int
    connection: AbstractConnection | None = None
    pool: list["PooledChannel"] = field(default_factory=list)
    state: ConnectionState = ConnectionState.CLOSED
    connect_attempts: int = 0
    reconnects: int = 0
    failed: bool = False

    def attach(self, connection: AbstractConnection, pool: list["PooledChannel"]) -> None:
        """Install a freshly opened connection and its full pool."""
        self.connection = connection
        self.pool = list(pool)
        self.state = ConnectionState.CONNECTED
        self.failed = False

    def detach(self, state: ConnectionState = ConnectionState.CLOSED) -> None:
        """Drop the connection; its channels are invalid from here on."""
        self.connection = None
        self.pool = []
        self.state = state

    @property
    def is_alive(self) -> bool:
        """False once a background reconnect has given up for good."""
        return not self.failed

    @property
    def is_ready(self) -> bool:
        """Connected with every pool slot filled."""
        return (
            self.state == ConnectionState.CONNECTED
            and len(self.pool) == self.pool_size
        )
