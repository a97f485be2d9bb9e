"""
Structured logging configuration.

Provides:
- JSON formatted logs for production
- Human-readable logs for development
- Correlation IDs for request tracking
- Contextual information (user, effective tenant, bypass flag, trace)
- An audit logger that stays at INFO whatever the root level is
"""

import logging
import re
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from tenantguard.config import settings

AUDIT_LOGGER_NAME = "tenantguard.audit"

SENSITIVE_KEYS = frozenset({
    "password", "token", "secret", "api_key",
    "authorization", "credit_card",
})

_BEARER_VALUE = re.compile(r"\bBearer\s+[\w\-.~+/]+=*", re.IGNORECASE)


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add environment, service name and version to every entry."""
    event_dict["environment"] = settings.environment
    event_dict["service"] = settings.app_name
    event_dict["version"] = settings.app_version
    return event_dict


def add_request_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add request context from contextvars.

    Values explicitly passed to the log call win over the context, so a guard
    logging ``tenant_id`` of an override target keeps that value.
    """
    from tenantguard.core.context import get_request_context

    for key, value in get_request_context().items():
        if value is not None:
            event_dict.setdefault(key, value)

    return event_dict


def censor_sensitive_data(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace values of credential-looking keys and bearer tokens inside strings."""
    for key, value in list(event_dict.items()):
        if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
            event_dict[key] = "***REDACTED***"
        elif isinstance(value, str) and "earer" in value:
            event_dict[key] = _BEARER_VALUE.sub("Bearer ***REDACTED***", value)

    return event_dict


def setup_logging() -> None:
    """
    Configure application-wide structured logging.

    Production: JSON logs to stdout
    Development: Colorized console logs
    """
    log_level = getattr(logging, settings.log_level.upper())

    shared_processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.contextvars.merge_contextvars,
        add_app_context,
        add_request_context,
        censor_sensitive_data,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: Processor
    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=settings.is_development)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Denials and overrides must reach the log even with LOG_LEVEL=WARNING
    logging.getLogger(AUDIT_LOGGER_NAME).setLevel(logging.INFO)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.db_echo else logging.WARNING
    )
    logging.getLogger("asyncpg").setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        log_format=settings.log_format,
        audit_logger=AUDIT_LOGGER_NAME,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("tenant_override_granted", principal_id=principal.id, target_tenant_id=7)
    """
    return structlog.get_logger(name)
