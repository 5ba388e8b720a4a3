"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache
from urllib.parse import quote

from pydantic_settings import BaseSettings, SettingsConfigDict

from job_bridge.constants import DEFAULT_EXCHANGE, DEFAULT_QUEUE, DEFAULT_ROUTING_KEY


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # RabbitMQ
    rabbitmq_host: str = "localhost"
    rabbitmq_port: int = 5672
    rabbitmq_user: str = "guest"
    rabbitmq_pass: str = "guest"
    rabbitmq_vhost: str = "/"
    rabbitmq_management_port: int = 15672

    # Topology
    exchange: str = DEFAULT_EXCHANGE
    routing_key: str = DEFAULT_ROUTING_KEY
    consumer_queue: str = DEFAULT_QUEUE

    # Channel pool / consumer
    max_channels: int = 5
    prefetch: int = 10

    # Connection retry
    connect_max_retries: int = 10
    connect_retry_delay_seconds: float = 3.0
    connect_backoff_factor: float = 1.5
    connect_max_retry_delay_seconds: float = 15.0

    # Publishing
    publish_retry_delay_seconds: float = 0.1
    publish_flow_timeout_seconds: float = 1.0

    # Readiness probe
    ready_max_retries: int = 20
    ready_retry_delay_seconds: float = 3.0
    ready_timeout_seconds: float = 5.0

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 3001

    # Rate Limiting
    rate_limit_enabled: bool = False
    rate_limit_requests_per_minute: int = 1000

    # Worker Configuration
    worker_id: str | None = None
    worker_simulated_work_ms: int = 10

    # Observability
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "job-bridge"
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    @property
    def rabbitmq_url(self) -> str:
        """AMQP URL assembled from the broker host, port, credentials and vhost."""
        return (
            f"amqp://{quote(self.rabbitmq_user, safe='')}:{quote(self.rabbitmq_pass, safe='')}"
            f"@{self.rabbitmq_host}:{self.rabbitmq_port}/{quote(self.rabbitmq_vhost, safe='')}"
        )

    @property
    def management_url(self) -> str:
        """Management API endpoint polled by the readiness probe."""
        return f"http://{self.rabbitmq_host}:{self.rabbitmq_management_port}/api/overview"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
