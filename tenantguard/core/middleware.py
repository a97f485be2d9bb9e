"""
Custom middleware for the application.
"""

import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from tenantguard.core.context import clear_request_context, set_request_context

logger = structlog.get_logger(__name__)

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add request context.

    Sets:
    - Request ID (for log correlation)
    - Trace ID (for distributed tracing)
    - Request timing
    - Context variables for structured logging
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        request_id = str(uuid.uuid4())
        trace_id = request.headers.get("X-Trace-ID", str(uuid.uuid4()))

        # Filled in by the auth and tenancy dependencies
        request.state.request_id = request_id
        request.state.trace_id = trace_id
        request.state.user_id = None
        request.state.tenant_id = None
        request.state.tenant_bypass = False

        set_request_context(request_id=request_id, trace_id=trace_id)

        start_time = time.perf_counter()

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

            # Endpoint ran in a child task; copy its identity back for the completion log
            set_request_context(
                user_id=request.state.user_id,
                tenant_id=request.state.tenant_id,
                tenant_bypass=request.state.tenant_bypass,
            )

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Trace-ID"] = trace_id
            response.headers["X-Process-Time"] = str(duration_ms)

            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )

            return response

        except Exception as e:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=duration_ms,
                error=str(e),
                exc_info=True,
            )
            raise

        finally:
            clear_request_context()


class TenantActivityMiddleware(BaseHTTPMiddleware):
    """
    Logs every write request with who made it and in which company.

    Reads are not logged here; the executor already logs each statement.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        response = await call_next(request)

        if request.method in WRITE_METHODS:
            logger.info(
                "tenant_activity",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                user_id=getattr(request.state, "user_id", None),
                tenant_id=getattr(request.state, "tenant_id", None),
                tenant_bypass=getattr(request.state, "tenant_bypass", False),
                client_ip=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )

        return response
