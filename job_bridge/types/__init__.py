"""
Type definitions for the job bridge.
Contains input/output type definitions, grouped by module.
"""

from job_bridge.types.api import (
    AcceptedResponse,
    EnqueueResponse,
    ErrorResponse,
    HealthResponse,
)
from job_bridge.types.job import JobResult

__all__ = [
    # API types
    "EnqueueResponse",
    "AcceptedResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "JobResult",
]
