"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from job_bridge.observability.logging import bind_context, setup_logging
from job_bridge.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from job_bridge.observability.tracing import instrument_fastapi, setup_tracing

__all__ = [
    "setup_logging",
    "bind_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "instrument_fastapi",
]
