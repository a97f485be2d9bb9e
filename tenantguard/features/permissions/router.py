"""
Self-service view of the caller's effective access.
"""

from fastapi import APIRouter

from tenantguard.features.permissions.guard import accessible_modules
from tenantguard.features.tenancy.dependencies import CurrentTenantContext
from tenantguard.policy import Action, get_policy
from tenantguard.schemas.user import AccessRead

router = APIRouter(prefix="/me", tags=["Access"])


@router.get("/access", response_model=AccessRead)
async def get_my_access(ctx: CurrentTenantContext) -> AccessRead:
    """Role level, actions and reachable modules for the current principal."""
    policy = get_policy()
    principal = ctx.principal

    if principal.is_top_level:
        actions = [action.value for action in Action if action is not Action.ANY]
    else:
        actions = sorted(action.value for action in policy.actions_for(principal.role))

    return AccessRead(
        user_id=principal.id,
        role=principal.role,
        role_level=policy.level(principal.role),
        company_id=ctx.tenant_id,
        bypass=ctx.bypass,
        scope=ctx.scope.value,
        plan=principal.tenant_plan,
        actions=actions,
        modules=sorted(accessible_modules(principal, policy), key=lambda module: module.value),
    )
