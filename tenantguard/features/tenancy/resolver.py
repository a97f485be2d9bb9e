"""
Tenant context resolution.

Decides, once per authenticated request, which company every downstream
statement is scoped to and whether the request is an audited cross-tenant
override by the top-level role.

Resolution rules:
1. Any role other than the top-level role is pinned to its own company;
   override signals are ignored.
2. The top-level role without a bypass intent keeps its own company
   (usually none) and no bypass.
3. The top-level role with a bypass intent and a positive target switches to
   the target company with ``bypass=True``; the override is audited first.
   A bypass intent with an absent or zero target means global scope.
4. Without bypass, the resolved company must be active.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import ColumnElement, Select

from tenantguard.config import settings
from tenantguard.core.exceptions import (
    CompanyAccessDeniedError,
    InsufficientRoleError,
    InvalidTenantIdError,
    MissingTargetTenantError,
    TenantInactiveError,
)
from tenantguard.core.metrics import tenant_overrides_total
from tenantguard.features.audit.sink import AuditEvent, AuditEventKind, AuditSink, emit_audit
from tenantguard.features.auth.schemas import Principal
from tenantguard.models.tenant import TenantStatus

logger = structlog.get_logger(__name__)

_WHERE = re.compile(r"\bwhere\b", re.IGNORECASE)
_SCOPE_PARAM = "tenant_scope_id"


class TenantScope(str, Enum):
    ISOLATED = "isolated"   # Own company, normal member access
    OVERRIDE = "override"   # Top-level role acting inside another company
    GLOBAL = "global"       # Top-level role with no company filter at all


@dataclass(frozen=True)
class OverrideSignals:
    """Raw override intent as sent by the client."""

    bypass: bool = False
    target: str | None = None

    @property
    def present(self) -> bool:
        return self.bypass or self.target is not None


def parse_override_signals(headers: Mapping[str, str]) -> OverrideSignals:
    """Read the bypass flag and target company headers."""
    bypass = headers.get(settings.bypass_header, "").strip().lower() == "true"
    target = headers.get(settings.target_tenant_header)
    if target is not None:
        target = target.strip() or None
    return OverrideSignals(bypass=bypass, target=target)


def parse_tenant_id(raw: str | int | None, *, allow_zero: bool = False) -> int | None:
    """
    Parse a company id from untrusted input.

    ``None`` stays ``None``; zero is accepted only when ``allow_zero`` is set
    and is returned as-is.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise InvalidTenantIdError()
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidTenantIdError()
    if value < 0 or (value == 0 and not allow_zero):
        raise InvalidTenantIdError()
    return value


@dataclass(frozen=True)
class TenantContext:
    """
    Per-request tenant scope.

    ``tenant_id`` is what every executor call must bind. In global scope it
    is ``None`` and the helpers leave statements unfiltered.
    """

    principal: Principal
    tenant_id: int | None
    bypass: bool
    scope: TenantScope
    endpoint: str | None = None
    column: str = field(default_factory=lambda: settings.tenant_column)

    @property
    def is_global(self) -> bool:
        return self.scope is TenantScope.GLOBAL

    def require_tenant(self) -> int:
        """Company id for operations that must target exactly one company."""
        if self.tenant_id is None:
            raise MissingTargetTenantError()
        return self.tenant_id

    def scope_sql(
        self,
        fragment: str,
        params: Mapping[str, Any] | None = None,
    ) -> tuple[str, dict[str, Any]]:
        """
        Append the tenant predicate to a SQL fragment.

        The fragment must end where a filter may be appended (no ORDER BY,
        GROUP BY or LIMIT after it).

            sql, params = ctx.scope_sql("SELECT * FROM leads WHERE status = :s", {"s": "open"})
            # SELECT * FROM leads WHERE status = :s AND company_id = :tenant_scope_id
        """
        params = dict(params or {})
        if self.is_global:
            self._log_unscoped(fragment)
            return fragment, params

        if _SCOPE_PARAM in params:
            raise ValueError(f"Parameter name '{_SCOPE_PARAM}' is reserved")

        fragment = fragment.rstrip().rstrip(";")
        keyword = "AND" if _WHERE.search(fragment) else "WHERE"
        params[_SCOPE_PARAM] = self.tenant_id
        return f"{fragment} {keyword} {self.column} = :{_SCOPE_PARAM}", params

    def scope_select(self, statement: Select, column: ColumnElement) -> Select:
        """Add ``column == tenant_id`` to a SQLAlchemy select (no-op in global scope)."""
        if self.is_global:
            self._log_unscoped(str(statement))
            return statement
        return statement.where(column == self.tenant_id)

    def scope_values(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Stamp insert/update values with the tenant column."""
        return {**values, self.column: self.require_tenant()}

    def _log_unscoped(self, statement: str) -> None:
        logger.warning(
            "unscoped_query",
            principal_id=self.principal.id,
            endpoint=self.endpoint,
            statement=" ".join(statement.split())[:120],
        )


def _audit_override(
    principal: Principal,
    target: int | None,
    endpoint: str | None,
    audit_sink: AuditSink | None,
) -> None:
    scope = TenantScope.GLOBAL if target is None else TenantScope.OVERRIDE
    tenant_overrides_total.labels(scope=scope.value).inc()

    log = logger.warning if target is None else logger.info
    log(
        "tenant_override_granted",
        principal_id=principal.id,
        original_tenant_id=principal.tenant_id,
        target_tenant_id=target,
        scope=scope.value,
        endpoint=endpoint,
    )

    if audit_sink is not None:
        emit_audit(audit_sink, AuditEvent(
            kind=AuditEventKind.TENANT_OVERRIDE,
            principal_id=principal.id,
            tenant_id=target,
            operation="tenant_override",
            endpoint=endpoint,
            details={
                "original_tenant_id": principal.tenant_id,
                "target_tenant_id": target,
                "scope": scope.value,
            },
        ))


def _ensure_active(principal: Principal, tenant_id: int | None) -> None:
    if principal.is_top_level and tenant_id is None:
        return
    if tenant_id is None or principal.tenant_status is not TenantStatus.ACTIVE:
        logger.warning(
            "tenant_inactive",
            principal_id=principal.id,
            tenant_id=tenant_id,
            tenant_status=principal.tenant_status.value if principal.tenant_status else None,
        )
        raise TenantInactiveError()


def resolve_tenant_context(
    principal: Principal,
    signals: OverrideSignals | None = None,
    *,
    endpoint: str | None = None,
    audit_sink: AuditSink | None = None,
) -> TenantContext:
    """
    Compute the effective tenant for a request.

    Raises:
        TenantInactiveError: non-bypass request resolving to an inactive company
        InvalidTenantIdError: top-level override with a malformed target
    """
    signals = signals or OverrideSignals()

    if principal.is_top_level and signals.bypass:
        target = parse_tenant_id(signals.target, allow_zero=True) or None
        _audit_override(principal, target, endpoint, audit_sink)
        context = TenantContext(
            principal=principal,
            tenant_id=target,
            bypass=True,
            scope=TenantScope.GLOBAL if target is None else TenantScope.OVERRIDE,
            endpoint=endpoint,
        )
    else:
        context = TenantContext(
            principal=principal,
            tenant_id=principal.tenant_id,
            bypass=False,
            scope=TenantScope.ISOLATED,
            endpoint=endpoint,
        )
        _ensure_active(principal, context.tenant_id)

    if settings.is_development:
        logger.debug(
            "tenant_context_resolved",
            principal_id=principal.id,
            tenant_id=context.tenant_id,
            bypass=context.bypass,
            scope=context.scope.value,
            endpoint=endpoint,
        )

    return context


def resolve_admin_context(
    principal: Principal,
    raw_target: str | int | None,
    *,
    endpoint: str | None = None,
    audit_sink: AuditSink | None = None,
) -> TenantContext:
    """
    Context for global administrative routes.

    Only the top-level role may use them. A target company narrows the scope,
    otherwise the route sees every company.
    """
    if not principal.is_top_level:
        logger.warning(
            "super_admin_route_denied",
            principal_id=principal.id,
            role=principal.role.value,
            endpoint=endpoint,
        )
        raise InsufficientRoleError("Restricted to platform administrators")

    target = parse_tenant_id(raw_target, allow_zero=True) or None
    _audit_override(principal, target, endpoint, audit_sink)
    return TenantContext(
        principal=principal,
        tenant_id=target,
        bypass=True,
        scope=TenantScope.GLOBAL if target is None else TenantScope.OVERRIDE,
        endpoint=endpoint,
    )


def validate_company_id(raw: str | int | None, principal: Principal) -> int:
    """
    Validate a company id addressed in a URL.

    Must be a positive integer, and only the top-level role may address a
    company other than its own.
    """
    company_id = parse_tenant_id(raw)
    if company_id is None:
        raise InvalidTenantIdError("Company id is required")

    if not principal.is_top_level and company_id != principal.tenant_id:
        logger.warning(
            "company_access_denied",
            principal_id=principal.id,
            tenant_id=principal.tenant_id,
            requested_company_id=company_id,
        )
        raise CompanyAccessDeniedError()

    return company_id
