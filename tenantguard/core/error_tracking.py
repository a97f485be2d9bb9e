"""
Error tracking and reporting.

Sentry when a DSN is configured, structured logs otherwise.
"""

from typing import Any

import sentry_sdk
import structlog
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from tenantguard.config import settings

logger = structlog.get_logger(__name__)


class ErrorTracker:
    """Thin facade over the Sentry SDK."""

    def __init__(self, enabled: bool = False, dsn: str | None = None):
        self.enabled = bool(enabled and dsn)
        self.dsn = dsn
        self._initialized = False

    def init(self) -> None:
        """Initialize Sentry SDK (idempotent)."""
        if not self.enabled or self._initialized:
            return

        sentry_sdk.init(
            dsn=self.dsn,
            environment=settings.environment,
            release=settings.app_version,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            send_default_pii=False,
            integrations=[
                FastApiIntegration(),
                SqlalchemyIntegration(),
                AsyncioIntegration(),
            ],
        )
        self._initialized = True
        logger.info("sentry_initialized", environment=settings.environment)

    def capture_exception(
        self,
        exception: Exception,
        context: dict[str, Any] | None = None,
    ) -> str | None:
        """
        Capture and report an exception.

        Args:
            exception: The exception to report
            context: Additional context (request id, path, tenant)

        Returns:
            Event ID from error tracker (or None)
        """
        if not self.enabled:
            logger.error(
                "exception_captured",
                exception=str(exception),
                exception_type=type(exception).__name__,
                context=context,
            )
            return None

        with sentry_sdk.new_scope() as scope:
            for key, value in (context or {}).items():
                scope.set_tag(key, value)
            return sentry_sdk.capture_exception(exception)


# Global error tracker instance
error_tracker = ErrorTracker(
    enabled=settings.sentry_enabled,
    dsn=settings.sentry_dsn,
)
