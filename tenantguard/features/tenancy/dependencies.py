"""
Tenant context dependencies.

Routes and guards take ``CurrentTenantContext`` as a parameter, so nothing
can be guarded or queried before the tenant has been resolved.
"""

from typing import Annotated

from fastapi import Depends, Request

from tenantguard.config import settings
from tenantguard.core.context import set_request_context
from tenantguard.features.audit.sink import AuditSink, get_audit_sink
from tenantguard.features.auth.dependencies import CurrentPrincipal
from tenantguard.features.tenancy.resolver import (
    TenantContext,
    parse_override_signals,
    resolve_admin_context,
    resolve_tenant_context,
    validate_company_id,
)


def _endpoint(request: Request) -> str:
    return f"{request.method} {request.url.path}"


def _publish(request: Request, context: TenantContext) -> TenantContext:
    request.state.tenant_context = context
    request.state.tenant_id = context.tenant_id
    request.state.tenant_bypass = context.bypass
    set_request_context(tenant_id=context.tenant_id, tenant_bypass=context.bypass)
    return context


async def get_tenant_context(
    request: Request,
    principal: CurrentPrincipal,
    audit_sink: Annotated[AuditSink, Depends(get_audit_sink)],
) -> TenantContext:
    """
    Resolve the tenant context once per request.

    Re-invocation within the same request returns the stored context, so the
    result is stable and an override is audited only once.
    """
    existing: TenantContext | None = getattr(request.state, "tenant_context", None)
    if existing is not None and existing.principal == principal:
        return existing

    context = resolve_tenant_context(
        principal,
        parse_override_signals(request.headers),
        endpoint=_endpoint(request),
        audit_sink=audit_sink,
    )
    return _publish(request, context)


async def get_admin_tenant_context(
    request: Request,
    principal: CurrentPrincipal,
    audit_sink: Annotated[AuditSink, Depends(get_audit_sink)],
) -> TenantContext:
    """
    Context for platform-admin routes.

    Target company from the path, then the query string, then the header.
    """
    raw_target = (
        request.path_params.get("company_id")
        or request.query_params.get("company_id")
        or request.headers.get(settings.target_tenant_header)
    )
    context = resolve_admin_context(
        principal,
        raw_target,
        endpoint=_endpoint(request),
        audit_sink=audit_sink,
    )
    return _publish(request, context)


async def get_validated_company_id(
    company_id: str,
    request: Request,
    ctx: Annotated[TenantContext, Depends(get_tenant_context)],
    audit_sink: Annotated[AuditSink, Depends(get_audit_sink)],
) -> int:
    """
    Path parameter ``company_id`` checked against the principal's company.

    The tenant context is resolved first, so an inactive company is refused
    before the id is even parsed. A platform administrator addressing a
    company other than the one in effect gets an override context for it,
    which is audited like a header override.
    """
    principal = ctx.principal
    validated = validate_company_id(company_id, principal)

    if principal.is_top_level and validated != ctx.tenant_id:
        _publish(request, resolve_admin_context(
            principal,
            validated,
            endpoint=_endpoint(request),
            audit_sink=audit_sink,
        ))

    return validated


# Type aliases for cleaner code
CurrentTenantContext = Annotated[TenantContext, Depends(get_tenant_context)]
AdminTenantContext = Annotated[TenantContext, Depends(get_admin_tenant_context)]
ValidatedCompanyId = Annotated[int, Depends(get_validated_company_id)]
