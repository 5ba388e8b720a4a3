"""
API routes module.
"""

from job_bridge.api.routes.health import router as health_router
from job_bridge.api.routes.jobs import router as jobs_router

__all__ = ["jobs_router", "health_router"]
