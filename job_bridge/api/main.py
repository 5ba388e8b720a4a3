"""
FastAPI application entry point.
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from job_bridge import __version__
from job_bridge.api.rate_limit import create_rate_limit_middleware
from job_bridge.api.routes import health_router, jobs_router
from job_bridge.broker.connection import ConnectionManager
from job_bridge.broker.publisher import Publisher
from job_bridge.config import get_settings
from job_bridge.observability.logging import setup_logging
from job_bridge.observability.metrics import get_metrics, setup_metrics
from job_bridge.observability.tracing import instrument_fastapi, setup_tracing

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Connects to RabbitMQ before serving. ``ConnectionExhausted`` or
    ``TopologyDeclarationFailed`` propagate and abort startup, so the HTTP
    layer is never served without a channel pool.
    """
    # Startup
    setup_logging(role="api")
    setup_metrics()
    setup_tracing(role="api")

    manager: ConnectionManager = app.state.connection_manager
    if not manager.context.is_ready:
        await manager.connect()

    logger.info("Application started")

    yield

    # Shutdown
    await manager.close()
    logger.info("Application shutdown")


def create_app(connection_manager: ConnectionManager | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        connection_manager: Broker connection owner. Built from settings by default.

    Returns:
        FastAPI: The configured application instance.
    """
    settings = get_settings()
    manager = connection_manager or ConnectionManager(settings)

    app = FastAPI(
        title="Job Bridge API",
        description="Accepts jobs over HTTP and publishes them to RabbitMQ",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.connection_manager = manager
    app.state.publisher = Publisher(manager.context, manager.settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.rate_limit_enabled:
        app.add_middleware(
            BaseHTTPMiddleware,
            dispatch=create_rate_limit_middleware(app),
        )

    @app.middleware("http")
    async def record_request_metrics(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        get_metrics().record_api_request(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code,
            duration_seconds=time.perf_counter() - start_time,
        )
        return response

    app.include_router(health_router)
    app.include_router(jobs_router)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()

    uvicorn.run(
        "job_bridge.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
    )


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    run()
