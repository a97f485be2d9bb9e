"""
FastAPI application factory.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tenantguard.config import settings
from tenantguard.core.database import db_manager
from tenantguard.core.error_tracking import error_tracker
from tenantguard.core.exceptions import DataAccessError, TenantGuardException
from tenantguard.core.logging_config import get_logger, setup_logging
from tenantguard.core.metrics import app_info
from tenantguard.core.middleware import RequestContextMiddleware, TenantActivityMiddleware
from tenantguard.core.performance import track_http_metrics

# Setup logging first
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan events."""
    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    error_tracker.init()
    db_manager.init()

    app_info.info({
        "version": settings.app_version,
        "environment": settings.environment,
    })

    logger.info("application_ready")

    yield

    logger.info("application_shutting_down")
    await db_manager.close()
    logger.info("application_shutdown_complete")


def _error_response(exc: TenantGuardException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_response_body())


def create_application() -> FastAPI:
    """Application factory."""

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Tenant isolation and authorization core for a multi-tenant CRM",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url=None if settings.is_production else "/openapi.json",
        lifespan=lifespan,
    )

    # Middleware (order matters - last added = outermost)
    app.add_middleware(TenantActivityMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Performance monitoring (outermost - tracks everything)
    @app.middleware("http")
    async def performance_middleware(request: Request, call_next):
        return await track_http_metrics(request, call_next)

    # Exception handlers
    @app.exception_handler(TenantGuardException)
    async def tenantguard_exception_handler(
        request: Request,
        exc: TenantGuardException,
    ) -> JSONResponse:
        if isinstance(exc, DataAccessError):
            logger.error(
                "data_access_failed",
                path=request.url.path,
                stage=exc.stage,
                cause=repr(exc.__cause__) if exc.__cause__ else None,
            )
            error_tracker.capture_exception(exc, context={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "stage": exc.stage,
            })
        elif exc.status_code >= 500:
            logger.error("request_error", path=request.url.path, code=exc.code)
        else:
            logger.info(
                "request_rejected",
                path=request.url.path,
                code=exc.code,
                status_code=exc.status_code,
            )
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.warning(
            "validation_error",
            path=request.url.path,
            errors=exc.errors(),
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=jsonable_encoder({
                "success": False,
                "error": "Request validation failed",
                "code": "VALIDATION_ERROR",
                "details": exc.errors(),
            }),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Global exception handler with error tracking."""

        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )

        error_tracker.capture_exception(
            exc,
            context={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
            }
        )

        body = TenantGuardException().to_response_body()
        body["request_id"] = request_id
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)

    # Register routers
    from tenantguard.api.health_router import router as health_router
    from tenantguard.api.metrics_router import router as metrics_router
    from tenantguard.api.v1.router import v1_router

    # Health endpoints (no prefix)
    app.include_router(health_router)

    if settings.metrics_enabled:
        app.include_router(metrics_router)

    app.include_router(v1_router, prefix="/api")

    @app.get("/", tags=["Root"])
    async def root() -> dict:
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "environment": settings.environment,
            "docs": "/docs" if settings.is_development else "Disabled in production",
            "health": "/health",
            "metrics": "/metrics" if settings.metrics_enabled else "Disabled",
        }

    logger.info("application_configured")
    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tenantguard.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload and settings.is_development,
        log_level=settings.log_level.lower(),
        access_log=False,  # We handle logging ourselves
    )
