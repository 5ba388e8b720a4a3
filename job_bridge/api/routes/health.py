"""
Health check routes.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, Response

from job_bridge import __version__
from job_bridge.broker.context import BrokerContext
from job_bridge.constants import ConnectionState
from job_bridge.observability.metrics import get_metrics
from job_bridge.types.api import HealthResponse

router = APIRouter(tags=["Health"])


def _broker_context(request: Request) -> BrokerContext:
    return request.app.state.connection_manager.context


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and its broker connection.",
)
async def health_check(request: Request) -> HealthResponse:
    """
    Perform a health check.

    Reports the broker connection state and the number of pooled channels.
    """
    context = _broker_context(request)

    return HealthResponse(
        status="ok" if context.state == ConnectionState.CONNECTED else "degraded",
        version=__version__,
        broker=context.state,
        channels=len(context.pool),
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(request: Request) -> JSONResponse:
    """
    Readiness check endpoint.

    Ready only while connected with a full channel pool; 503 otherwise
    (for example while reconnecting).
    """
    ready = _broker_context(request).is_ready
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"ready": ready},
    )


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check(request: Request) -> JSONResponse:
    """
    Liveness check endpoint.

    Fails once the producer has given up reconnecting, so the supervisor
    restarts the process.
    """
    alive = _broker_context(request).is_alive
    return JSONResponse(
        status_code=status.HTTP_200_OK if alive else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"alive": alive},
    )


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics() -> Response:
    """Expose Prometheus metrics."""
    metrics_collector = get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
