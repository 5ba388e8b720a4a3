"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class ConnectionState(StrEnum):
    """
    Liveness of the broker connection.

    State transitions:
    - CLOSED -> CONNECTED (connect succeeded, pool initialized)
    - CLOSED -> ERROR (connect attempt failed)
    - ERROR -> CONNECTED (later attempt succeeded)
    - CONNECTED -> CLOSED (connection closed, pool discarded)
    - CONNECTED -> ERROR (connection closed with an error)
    """

    CONNECTED = "connected"
    CLOSED = "closed"
    ERROR = "error"


class DeliveryOutcome(StrEnum):
    """
    Terminal states of a delivery on the consumer side.

    State transitions:
    - RECEIVED -> PROCESSING (handler started)
    - PROCESSING -> ACKED (handler succeeded)
    - PROCESSING -> REQUEUED (handler failed, message returns to the queue)
    """

    ACKED = "acked"
    REQUEUED = "requeued"


class PublishOutcome(StrEnum):
    """Result of a single publish call."""

    PUBLISHED = "published"
    FLOW = "flow"
    FAILED = "failed"


# Topology defaults
DEFAULT_EXCHANGE = "jobs-exchange"
DEFAULT_ROUTING_KEY = "send.whatsapp"
DEFAULT_QUEUE = "send-whatsapp-queue"
PUBLISH_ATTEMPTS = 2
PAYLOAD_CONTENT_TYPE = "application/json"

# Job handler defaults
DEFAULT_JOB_TYPE = "default"
JOB_TYPE_FIELD = "job_type"

# Metrics names
METRIC_JOBS_PUBLISHED = "jobs_published_total"
METRIC_PUBLISH_RETRIES = "publish_retries_total"
METRIC_JOBS_PROCESSED = "jobs_processed_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_CHANNEL_POOL_SIZE = "channel_pool_size"
METRIC_BROKER_RECONNECTS = "broker_reconnects_total"
METRIC_BROKER_CONNECT_FAILURES = "broker_connect_failures_total"
METRIC_API_REQUESTS = "api_requests_total"
METRIC_API_LATENCY = "api_request_latency_seconds"

# Trace span names
SPAN_PUBLISH_JOB = "publish_job"
SPAN_PROCESS_JOB = "process_job"
