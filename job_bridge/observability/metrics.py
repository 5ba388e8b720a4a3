"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from job_bridge.constants import (
    METRIC_API_LATENCY,
    METRIC_API_REQUESTS,
    METRIC_BROKER_CONNECT_FAILURES,
    METRIC_BROKER_RECONNECTS,
    METRIC_CHANNEL_POOL_SIZE,
    METRIC_JOB_DURATION,
    METRIC_JOBS_PROCESSED,
    METRIC_JOBS_PUBLISHED,
    METRIC_PUBLISH_RETRIES,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job bridge.

    Collects metrics for:
    - Publishes per pool channel and outcome
    - Publish retries
    - Deliveries processed by the consumer, and handler duration
    - Channel pool size and broker connection churn
    - API requests
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.jobs_published = Counter(
            METRIC_JOBS_PUBLISHED,
            "Total number of publish calls",
            ["channel", "outcome"],
            registry=self._registry,
        )

        self.publish_retries = Counter(
            METRIC_PUBLISH_RETRIES,
            "Total number of publish retries after a failed attempt",
            ["channel"],
            registry=self._registry,
        )

        self.jobs_processed = Counter(
            METRIC_JOBS_PROCESSED,
            "Total number of deliveries settled by the consumer",
            ["worker_id", "outcome"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job handler duration in seconds",
            ["worker_id", "outcome"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self._registry,
        )

        self.channel_pool_size = Gauge(
            METRIC_CHANNEL_POOL_SIZE,
            "Number of open channels in the pool",
            ["role"],
            registry=self._registry,
        )

        self.broker_reconnects = Counter(
            METRIC_BROKER_RECONNECTS,
            "Total number of successful background reconnects",
            registry=self._registry,
        )

        self.broker_connect_failures = Counter(
            METRIC_BROKER_CONNECT_FAILURES,
            "Total number of failed connect attempts",
            registry=self._registry,
        )

        self.api_requests = Counter(
            METRIC_API_REQUESTS,
            "Total number of API requests",
            ["method", "endpoint", "status"],
            registry=self._registry,
        )

        self.api_latency = Histogram(
            METRIC_API_LATENCY,
            "API request latency in seconds",
            ["method", "endpoint"],
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
            registry=self._registry,
        )

    def record_publish(self, channel: int, outcome: str) -> None:
        """Record the outcome of a publish call on a pool channel."""
        self.jobs_published.labels(channel=str(channel), outcome=outcome).inc()

    def record_publish_retry(self, channel: int) -> None:
        """Record a publish retry."""
        self.publish_retries.labels(channel=str(channel)).inc()

    def record_job_processed(
        self,
        worker_id: str,
        outcome: str,
        duration_seconds: float,
    ) -> None:
        """Record a settled delivery."""
        self.jobs_processed.labels(worker_id=worker_id, outcome=outcome).inc()
        self.job_duration.labels(worker_id=worker_id, outcome=outcome).observe(
            duration_seconds
        )

    def set_pool_size(self, role: str, size: int) -> None:
        """Update the open channel count for a role."""
        self.channel_pool_size.labels(role=role).set(size)

    def record_reconnect(self) -> None:
        """Record a successful background reconnect."""
        self.broker_reconnects.inc()

    def record_connect_failure(self) -> None:
        """Record a failed connect attempt."""
        self.broker_connect_failures.inc()

    def record_api_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration_seconds: float,
    ) -> None:
        """Record an API request."""
        self.api_requests.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        self.api_latency.labels(method=method, endpoint=endpoint).observe(
            duration_seconds
        )

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """Get the metrics collector instance, creating it on first use."""
    if _metrics is None:
        return setup_metrics()
    return _metrics
