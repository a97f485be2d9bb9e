"""
Permission guard.

Gates an attempted operation by role actions, explicit user permissions,
module enablement, role hierarchy, ownership and plan ceilings. Every check
takes the resolved ``TenantContext``; none of them mutates principal or
tenant state. Only ``check_plan_limit`` touches the store (a counting query).

Denials are logged, counted and sent to the audit sink before the error is
raised. Error messages stay generic; the audit event carries the detail.
"""

from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from tenantguard.core.exceptions import (
    ActionDeniedError,
    InsufficientRoleError,
    MissingTargetIdError,
    ModuleDeniedError,
    OwnershipDeniedError,
    PlanConfigError,
    PlanLimitExceededError,
    RoleHierarchyViolationError,
    TenantGuardException,
)
from tenantguard.core.metrics import authz_decisions_total, plan_limit_fail_open_total
from tenantguard.features.audit.sink import AuditEvent, AuditEventKind, AuditSink, emit_audit
from tenantguard.features.auth.schemas import Principal
from tenantguard.features.tenancy.resolver import TenantContext
from tenantguard.policy import (
    ELEVATED_ROLE,
    UNLIMITED,
    Action,
    LimitName,
    Module,
    PolicySnapshot,
    Role,
    get_policy,
)

logger = structlog.get_logger(__name__)

WILDCARD_GRANT = "*"


class UsageCounter(Protocol):
    async def count(self, limit: LimitName, tenant_id: int) -> int | None:
        """Current usage, or None when no counter exists for ``limit``."""
        ...


@dataclass(frozen=True)
class PlanUsage:
    """Usage snapshot taken by a passing plan-limit check."""

    limit_name: str
    current: int
    limit: int
    plan: str
    increment: int


def _allow(check: str) -> None:
    authz_decisions_total.labels(check=check, outcome="allowed").inc()


def _deny(
    check: str,
    kind: AuditEventKind,
    ctx: TenantContext,
    error: TenantGuardException,
    audit_sink: AuditSink | None,
    **details: Any,
) -> None:
    principal = ctx.principal
    authz_decisions_total.labels(check=check, outcome="denied").inc()
    logger.warning(
        "permission_denied",
        check=check,
        principal_id=principal.id,
        tenant_id=ctx.tenant_id,
        role=principal.role.value,
        endpoint=ctx.endpoint,
        **details,
    )
    if audit_sink is not None:
        emit_audit(audit_sink, AuditEvent(
            kind=kind,
            principal_id=principal.id,
            tenant_id=ctx.tenant_id,
            operation=check,
            endpoint=ctx.endpoint,
            details={"role": principal.role.value, **details},
        ))
    raise error


def _grants(principal: Principal) -> frozenset[str]:
    return frozenset(principal.permissions)


def require_action(
    ctx: TenantContext,
    action: Action,
    resource: str | None = None,
    *,
    audit_sink: AuditSink | None = None,
    policy: PolicySnapshot | None = None,
) -> None:
    """
    Allow ``action`` when the role permits it and, for principals with an
    explicit permission list (other than company admins), the list grants it
    as ``action``, ``action:resource`` or ``*``.

    Raises:
        ActionDeniedError
    """
    if action is Action.ANY:
        raise ValueError("Guard a concrete action, not the wildcard")

    principal = ctx.principal
    if principal.is_top_level:
        _allow("action")
        return

    policy = policy or get_policy()
    role_actions = policy.actions_for(principal.role)
    if Action.ANY not in role_actions and action not in role_actions:
        _deny(
            "action", AuditEventKind.ACTION_DENIED, ctx, ActionDeniedError(), audit_sink,
            action=action.value, resource=resource, reason="role",
        )

    if principal.uses_explicit_permissions:
        grants = _grants(principal)
        granted = (
            action.value in grants
            or WILDCARD_GRANT in grants
            or (resource is not None and f"{action.value}:{resource}" in grants)
        )
        if not granted:
            _deny(
                "action", AuditEventKind.ACTION_DENIED, ctx, ActionDeniedError(), audit_sink,
                action=action.value, resource=resource, reason="permission_list",
            )

    _allow("action")


def require_module(
    ctx: TenantContext,
    module: Module,
    *,
    audit_sink: AuditSink | None = None,
) -> None:
    """
    Allow ``module`` when the company has it enabled and, for principals with
    an explicit permission list (other than company admins), the list names it.

    Raises:
        ModuleDeniedError
    """
    if module is Module.ANY:
        raise ValueError("Guard a concrete module, not the wildcard")

    principal = ctx.principal
    if principal.is_top_level:
        _allow("module")
        return

    enabled = principal.tenant_modules
    if Module.ANY not in enabled and module not in enabled:
        _deny(
            "module", AuditEventKind.MODULE_DENIED, ctx, ModuleDeniedError(), audit_sink,
            module=module.value, reason="not_enabled",
        )

    if principal.uses_explicit_permissions:
        grants = _grants(principal)
        if module.value not in grants and WILDCARD_GRANT not in grants:
            _deny(
                "module", AuditEventKind.MODULE_DENIED, ctx, ModuleDeniedError(), audit_sink,
                module=module.value, reason="permission_list",
            )

    _allow("module")


def check_role_hierarchy(
    ctx: TenantContext,
    target_role: Role,
    *,
    audit_sink: AuditSink | None = None,
    policy: PolicySnapshot | None = None,
) -> None:
    """
    Deny creating, promoting or modifying a principal whose role level is
    greater than or equal to the actor's. The top-level role is exempt.

    Raises:
        RoleHierarchyViolationError
    """
    principal = ctx.principal
    if principal.is_top_level:
        _allow("role_hierarchy")
        return

    policy = policy or get_policy()
    actor_level = policy.level(principal.role)
    target_level = policy.level(target_role)

    if target_level >= actor_level:
        _deny(
            "role_hierarchy",
            AuditEventKind.ROLE_HIERARCHY_VIOLATION,
            ctx,
            RoleHierarchyViolationError(),
            audit_sink,
            actor_level=actor_level,
            target_role=target_role.value,
            target_level=target_level,
        )

    _allow("role_hierarchy")


async def check_plan_limit(
    ctx: TenantContext,
    limit: LimitName,
    increment_by: int = 1,
    *,
    usage_counter: UsageCounter,
    audit_sink: AuditSink | None = None,
    policy: PolicySnapshot | None = None,
    allow_on_usage_error: bool = True,
) -> PlanUsage | None:
    """
    Refuse an operation that would push the company past its plan ceiling.

    ``allow_on_usage_error`` keeps the availability-first policy: if usage
    cannot be computed the operation is allowed and the failure is logged
    and counted. Returns the usage snapshot, or None when nothing was counted.

    Raises:
        PlanLimitExceededError: ``current + increment_by`` exceeds the ceiling
        PlanConfigError: the company's plan is not defined
    """
    if increment_by < 0:
        raise ValueError("increment_by must not be negative")

    principal = ctx.principal
    if principal.is_top_level:
        _allow("plan_limit")
        return None

    policy = policy or get_policy()
    plan = policy.plan(principal.tenant_plan)
    if plan is None:
        logger.error(
            "plan_config_missing",
            tenant_id=principal.tenant_id,
            plan=principal.tenant_plan,
        )
        raise PlanConfigError()

    ceiling = plan.ceiling(limit)
    if ceiling is UNLIMITED:
        _allow("plan_limit")
        return None

    tenant_id = principal.tenant_id
    try:
        current = await usage_counter.count(limit, tenant_id)
    except Exception as exc:
        if not allow_on_usage_error:
            raise
        plan_limit_fail_open_total.labels(limit_name=limit.value).inc()
        logger.error(
            "plan_limit_check_failed_open",
            tenant_id=tenant_id,
            plan=plan.name,
            limit_name=limit.value,
            error=str(exc),
        )
        return None

    if current is None:
        logger.warning("plan_limit_not_counted", limit_name=limit.value, tenant_id=tenant_id)
        return None

    if current + increment_by > ceiling:
        _deny(
            "plan_limit",
            AuditEventKind.PLAN_LIMIT_EXCEEDED,
            ctx,
            PlanLimitExceededError(limit.value, current, ceiling, plan.name),
            audit_sink,
            limit_name=limit.value,
            current=current,
            limit=ceiling,
            plan=plan.name,
            attempted=increment_by,
        )

    _allow("plan_limit")
    return PlanUsage(
        limit_name=limit.value,
        current=current,
        limit=ceiling,
        plan=plan.name,
        increment=increment_by,
    )


def require_ownership_or_resource(
    ctx: TenantContext,
    target_id: Any,
    *,
    audit_sink: AuditSink | None = None,
    policy: PolicySnapshot | None = None,
) -> None:
    """
    Managers and above may address any user; lower roles only themselves.

    Raises:
        MissingTargetIdError: no target identifier was resolved
        OwnershipDeniedError
    """
    if target_id is None or target_id == "":
        raise MissingTargetIdError()

    principal = ctx.principal
    policy = policy or get_policy()
    if policy.level(principal.role) >= policy.level(ELEVATED_ROLE):
        _allow("ownership")
        return

    try:
        owns = int(target_id) == principal.id
    except (TypeError, ValueError):
        owns = False

    if not owns:
        _deny(
            "ownership", AuditEventKind.OWNERSHIP_DENIED, ctx, OwnershipDeniedError(), audit_sink,
            target_id=str(target_id),
        )

    _allow("ownership")


def require_roles(ctx: TenantContext, *roles: Role) -> None:
    """Allow only the listed roles."""
    if ctx.principal.role not in roles:
        authz_decisions_total.labels(check="role", outcome="denied").inc()
        logger.warning(
            "insufficient_role",
            principal_id=ctx.principal.id,
            role=ctx.principal.role.value,
            required_roles=[role.value for role in roles],
            endpoint=ctx.endpoint,
        )
        raise InsufficientRoleError()
    _allow("role")


def accessible_modules(
    principal: Principal,
    policy: PolicySnapshot | None = None,
) -> frozenset[Module]:
    """
    Modules the principal can open: enabled for the company, allowed for
    the role, and granted by the explicit permission list when one applies.
    """
    concrete = [module for module in Module if module is not Module.ANY]
    if principal.is_top_level:
        return frozenset(concrete)

    policy = policy or get_policy()
    enabled = principal.tenant_modules
    grants = _grants(principal)

    accessible = set()
    for module in concrete:
        if Module.ANY not in enabled and module not in enabled:
            continue
        if principal.role not in policy.roles_for_module(module):
            continue
        if principal.uses_explicit_permissions and not (
            module.value in grants or WILDCARD_GRANT in grants
        ):
            continue
        accessible.add(module)
    return frozenset(accessible)
