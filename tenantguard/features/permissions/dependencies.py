"""
Dependency factories wrapping the permission guard.

Every factory depends on the resolved tenant context, so a route can never
be guarded before tenant resolution has run.

Usage:
    @router.post("/users")
    async def create_user(
        ctx: Annotated[TenantContext, Depends(require_action(Action.CREATE, "users", audit=True))],
        usage: Annotated[PlanUsage | None, Depends(require_plan_capacity(LimitName.USERS))],
    ):
        ...
"""

from collections.abc import AsyncIterator, Callable
from typing import Annotated, Any

from fastapi import Depends, Request

from tenantguard.features.audit.sink import (
    AuditEvent,
    AuditEventKind,
    AuditSink,
    emit_audit,
    get_audit_sink,
)
from tenantguard.features.permissions import guard
from tenantguard.features.permissions.guard import PlanUsage
from tenantguard.features.permissions.usage import ExecutorUsageCounter, get_usage_counter
from tenantguard.features.tenancy.dependencies import CurrentTenantContext
from tenantguard.features.tenancy.resolver import TenantContext
from tenantguard.policy import Action, LimitName, Module, Role

AuditSinkDep = Annotated[AuditSink, Depends(get_audit_sink)]


def _record_authorized(
    audit_sink: AuditSink,
    ctx: TenantContext,
    operation: str,
    **details: Any,
) -> None:
    emit_audit(audit_sink, AuditEvent(
        kind=AuditEventKind.AUTHORIZED_ACTION,
        principal_id=ctx.principal.id,
        tenant_id=ctx.tenant_id,
        operation=operation,
        endpoint=ctx.endpoint,
        details=details,
    ))


def require_action(action: Action, resource: str | None = None, *, audit: bool = False):
    """
    Dependency factory for action checks.

    With ``audit=True`` an ``authorized_action`` event is recorded once the
    handler has completed without raising.
    """
    async def action_checker(
        ctx: CurrentTenantContext,
        audit_sink: AuditSinkDep,
    ) -> AsyncIterator[TenantContext]:
        guard.require_action(ctx, action, resource, audit_sink=audit_sink)
        yield ctx
        if audit:
            _record_authorized(
                audit_sink, ctx, f"{action.value}:{resource}" if resource else action.value,
                action=action.value, resource=resource,
            )

    return action_checker


def require_module(module: Module):
    """Dependency factory for module checks."""
    async def module_checker(
        ctx: CurrentTenantContext,
        audit_sink: AuditSinkDep,
    ) -> TenantContext:
        guard.require_module(ctx, module, audit_sink=audit_sink)
        return ctx

    return module_checker


def require_plan_capacity(limit: LimitName, increment_by: int = 1):
    """
    Dependency factory for plan ceilings.

    The usage snapshot is returned and also kept on ``request.state.plan_usage``.
    """
    async def capacity_checker(
        request: Request,
        ctx: CurrentTenantContext,
        audit_sink: AuditSinkDep,
        usage_counter: Annotated[ExecutorUsageCounter, Depends(get_usage_counter)],
    ) -> PlanUsage | None:
        usage = await guard.check_plan_limit(
            ctx,
            limit,
            increment_by,
            usage_counter=usage_counter,
            audit_sink=audit_sink,
        )
        request.state.plan_usage = usage
        return usage

    return capacity_checker


def _path_param(name: str) -> Callable[[Request], Any]:
    def extract(request: Request) -> Any:
        return request.path_params.get(name) or request.query_params.get(name)
    return extract


def require_ownership(
    param: str = "user_id",
    extractor: Callable[[Request], Any] | None = None,
):
    """
    Dependency factory for self-or-elevated access.

    The target id is read from the ``param`` path or query parameter unless
    an ``extractor`` is given.
    """
    extract = extractor or _path_param(param)

    async def ownership_checker(
        request: Request,
        ctx: CurrentTenantContext,
        audit_sink: AuditSinkDep,
    ) -> TenantContext:
        guard.require_ownership_or_resource(ctx, extract(request), audit_sink=audit_sink)
        return ctx

    return ownership_checker


def require_roles(*roles: Role):
    """Dependency factory for explicit role lists."""
    async def role_checker(ctx: CurrentTenantContext) -> TenantContext:
        guard.require_roles(ctx, *roles)
        return ctx

    return role_checker
