"""
Job handlers registry and implementations.

Job handlers must be idempotent - delivery is at-least-once, so a job may be
executed again after a failure, a worker crash or a lost connection.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

from job_bridge.config import get_settings
from job_bridge.constants import DEFAULT_JOB_TYPE, JOB_TYPE_FIELD
from job_bridge.types.job import JobResult

logger = logging.getLogger(__name__)

# Type alias for job handler functions
JobHandler = Callable[[dict[str, Any]], Awaitable[JobResult]]

# Handler registry
_handlers: dict[str, JobHandler] = {}


def register_handler(job_type: str) -> Callable[[JobHandler], JobHandler]:
    """
    Decorator to register a job handler.

    Args:
        job_type: Value of the payload's ``job_type`` field this handler processes.

    Returns:
        Decorator function.

    Example:
        @register_handler("send_email")
        async def handle_send_email(payload: dict[str, Any]) -> JobResult:
            ...
    """
    def decorator(handler: JobHandler) -> JobHandler:
        _handlers[job_type] = handler
        logger.debug(f"Registered handler for job type: {job_type}")
        return handler
    return decorator


def get_handler(job_type: str) -> JobHandler | None:
    """Get the handler for a job type, or None if not registered."""
    return _handlers.get(job_type)


def list_handlers() -> list[str]:
    """List all registered job types."""
    return list(_handlers.keys())


# ============================================================================
# Built-in job handlers
# ============================================================================


@register_handler(DEFAULT_JOB_TYPE)
async def handle_default(payload: dict[str, Any]) -> JobResult:
    """
    Default handler for payloads without a ``job_type``.

    Logs the job and simulates ``worker_simulated_work_ms`` of work.
    """
    work_ms = get_settings().worker_simulated_work_ms

    await asyncio.sleep(work_ms / 1000)
    logger.info("Job processed successfully", extra={"payload": payload})

    return JobResult(success=True, duration_ms=float(work_ms))


@register_handler("echo")
async def handle_echo(payload: dict[str, Any]) -> JobResult:
    """
    Echo handler for testing.

    Simply returns the input payload as output.
    """
    return JobResult(
        success=True,
        output={"echo": payload},
    )


@register_handler("sleep")
async def handle_sleep(payload: dict[str, Any]) -> JobResult:
    """
    Sleep handler for testing delays and prefetch limits.

    Payload should contain:
    - duration_seconds: How long to sleep
    """
    duration = payload.get("data", {}).get("duration_seconds", 1)

    logger.info("Sleep job starting", extra={"duration": duration})
    await asyncio.sleep(duration)

    return JobResult(
        success=True,
        output={"slept_for": duration},
    )


@register_handler("random_failure")
async def handle_random_failure(payload: dict[str, Any]) -> JobResult:
    """
    Handler that randomly fails - for exercising requeue and redelivery.

    Payload should contain:
    - failure_rate: Probability of failure (0.0 to 1.0)
    """
    failure_rate = payload.get("data", {}).get("failure_rate", 0.5)

    if random.random() < failure_rate:
        logger.warning("Random failure triggered")
        return JobResult(
            success=False,
            error="Random failure",
        )

    return JobResult(
        success=True,
        output={"message": "Succeeded this time!"},
    )


async def execute_job(payload: Any) -> JobResult:
    """
    Execute a job using the handler named by its ``job_type`` field.

    Payloads that are not JSON objects, or carry no ``job_type``, go to
    the default handler.

    Args:
        payload: The decoded job payload.

    Returns:
        JobResult from the handler.

    Raises:
        Exception: Whatever the handler raised; the consumer requeues the job.
    """
    if isinstance(payload, dict):
        job_type = payload.get(JOB_TYPE_FIELD, DEFAULT_JOB_TYPE)
    else:
        job_type = DEFAULT_JOB_TYPE
        payload = {"value": payload}

    handler = get_handler(job_type)

    if handler is None:
        logger.error(f"No handler for job type: {job_type}")
        return JobResult(
            success=False,
            error=f"No handler registered for job type: {job_type}",
        )

    return await handler(payload)
