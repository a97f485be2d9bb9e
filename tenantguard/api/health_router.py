"""
Health check endpoints for monitoring and orchestration.

Provides:
- Liveness probe: Is the app running?
- Readiness probe: Can the app reach the database?
- Detailed health check: Readiness plus version information
"""

import time
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from tenantguard.config import settings
from tenantguard.core.exceptions import DataAccessError
from tenantguard.core.executor import SessionScopedExecutor, get_executor

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])


async def _database_check(executor: SessionScopedExecutor) -> dict[str, Any]:
    start = time.perf_counter()
    try:
        healthy = await executor.healthcheck()
    except DataAccessError as e:
        logger.warning("database_health_check_failed", stage=e.stage)
        return {"status": "unhealthy", "stage": e.stage}

    return {
        "status": "healthy" if healthy else "unhealthy",
        "response_time_ms": round((time.perf_counter() - start) * 1000, 2),
    }


@router.get("/health/live")
async def liveness() -> dict:
    """
    Liveness probe.

    Returns:
        200: Application is running
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(
    executor: Annotated[SessionScopedExecutor, Depends(get_executor)],
) -> JSONResponse:
    """
    Readiness probe.

    Pings the database through the executor without a tenant binding.

    Returns:
        200: Ready to serve traffic
        503: Not ready (database unavailable)
    """
    database = await _database_check(executor)
    is_ready = database["status"] == "healthy"

    return JSONResponse(
        status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if is_ready else "not_ready",
            "checks": {"database": database},
        },
    )


@router.get("/health")
async def health(
    executor: Annotated[SessionScopedExecutor, Depends(get_executor)],
) -> dict:
    """Detailed health check with version information."""
    database = await _database_check(executor)

    return {
        "status": "healthy" if database["status"] == "healthy" else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {"database": database},
    }
