"""
API request and response type definitions.
"""

from datetime import datetime

from pydantic import BaseModel

from job_bridge.constants import ConnectionState


class EnqueueResponse(BaseModel):
    """Response after a job was handed to the broker."""

    status: str = "queued"


class AcceptedResponse(BaseModel):
    """Response for fire-and-forget submission."""

    accepted: bool = True


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    broker: ConnectionState
    channels: int
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None
