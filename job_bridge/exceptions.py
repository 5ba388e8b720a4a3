"""
Exceptions raised by the broker core.
"""


class JobBridgeError(Exception):
    """Base exception for the job bridge."""


class ConnectionExhausted(JobBridgeError):
    """Every connect attempt failed. Fatal at startup."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Unable to connect to RabbitMQ after {attempts} attempts")


class TopologyDeclarationFailed(JobBridgeError):
    """Declaring the exchange, queue or binding failed. Fatal at startup."""

    def __init__(self, exchange: str, queue: str, channel_index: int):
        self.exchange = exchange
        self.queue = queue
        self.channel_index = channel_index
        super().__init__(
            f"Failed to declare topology {exchange!r} -> {queue!r} on channel {channel_index}"
        )


class NoChannelsAvailable(JobBridgeError):
    """The channel pool is empty (not yet initialized, or reconnecting)."""

    def __init__(self):
        super().__init__("No RabbitMQ channels available")


class PublishFailed(JobBridgeError):
    """Both the publish attempt and its retry raised."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Failed to publish job after {attempts} attempts")


class PublishRejected(JobBridgeError):
    """The broker negatively confirmed a publish."""


class ConnectionLost(JobBridgeError):
    """The consumer connection closed. Fatal for the consumer process."""


class NotReady(JobBridgeError):
    """The broker management endpoint never reported ready."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"RabbitMQ was not ready after {attempts} attempts")


class HandlerFailure(JobBridgeError):
    """Raised by a job handler to reject a delivery so it is requeued."""
