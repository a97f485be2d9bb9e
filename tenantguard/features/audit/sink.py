"""
Audit sink for authorization decisions of consequence.

Delivery is best-effort: ``emit_audit`` never lets a sink failure reach the
guarded request.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

import structlog

from tenantguard.core.logging_config import AUDIT_LOGGER_NAME
from tenantguard.core.metrics import audit_delivery_failures_total

logger = structlog.get_logger(__name__)


class AuditEventKind(str, Enum):
    TENANT_OVERRIDE = "tenant_override"
    ACTION_DENIED = "action_denied"
    MODULE_DENIED = "module_denied"
    ROLE_HIERARCHY_VIOLATION = "role_hierarchy_violation"
    PLAN_LIMIT_EXCEEDED = "plan_limit_exceeded"
    OWNERSHIP_DENIED = "ownership_denied"
    AUTHORIZED_ACTION = "authorized_action"


@dataclass(frozen=True)
class AuditEvent:
    kind: AuditEventKind
    principal_id: int | None
    tenant_id: int | None
    operation: str
    endpoint: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_log_fields(self) -> dict[str, Any]:
        return {
            "audit_kind": self.kind.value,
            "principal_id": self.principal_id,
            "tenant_id": self.tenant_id,
            "operation": self.operation,
            "endpoint": self.endpoint,
            "occurred_at": self.timestamp.isoformat(),
            **self.details,
        }


class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None:
        ...


class StructlogAuditSink:
    """Writes audit events to the ``tenantguard.audit`` logger."""

    def __init__(self, logger_name: str = AUDIT_LOGGER_NAME) -> None:
        self._logger = structlog.get_logger(logger_name)

    def record(self, event: AuditEvent) -> None:
        if event.kind is AuditEventKind.AUTHORIZED_ACTION:
            self._logger.info("audit_event", **event.as_log_fields())
        else:
            self._logger.warning("audit_event", **event.as_log_fields())


def emit_audit(sink: AuditSink, event: AuditEvent) -> None:
    """Fire-and-forget delivery."""
    try:
        sink.record(event)
    except Exception as exc:
        audit_delivery_failures_total.labels(kind=event.kind.value).inc()
        logger.error(
            "audit_delivery_failed",
            audit_kind=event.kind.value,
            principal_id=event.principal_id,
            error=str(exc),
        )


# Global instance
audit_sink: AuditSink = StructlogAuditSink()


def get_audit_sink() -> AuditSink:
    """FastAPI dependency for the audit sink (override in tests)."""
    return audit_sink
