"""
Structured logging setup using structlog.

Both process roles (the API producer and the worker consumer) log through the
standard library ``logging`` module with ``extra=`` fields; structlog renders
those records as JSON or coloured console lines.
"""

import logging
import sys
from typing import Any

import structlog
from opentelemetry import trace

from job_bridge.config import get_settings

# The AMQP client logs every frame-level hiccup; keep our own records instead
QUIET_LOGGERS = ("aio_pika", "aiormq", "uvicorn.access", "httpx")


def add_trace_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Stamp ``trace_id``/``span_id`` of the active span onto a record."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def _renderer(log_format: str) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(role: str | None = None) -> None:
    """
    Route stdlib logging through structlog for one process role.

    Replaces the root handlers, so calling it again reconfigures instead of
    duplicating output. Context bound earlier in the process is dropped.

    Args:
        role: "api" or "worker". Bound with the service name to every line.
    """
    settings = get_settings()

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_trace_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings.log_format),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    if role:
        bind_context(service=settings.otel_service_name, role=role)


def bind_context(**kwargs: Any) -> None:
    """Attach key/value pairs to every later log line of this context."""
    structlog.contextvars.bind_contextvars(**kwargs)
