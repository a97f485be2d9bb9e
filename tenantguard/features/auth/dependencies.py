"""
Authentication dependencies for dependency injection.

Turns a bearer token into a ``Principal``. Everything downstream trusts the
principal once produced.
"""

import logging
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from pydantic import ValidationError
from sqlalchemy import select

from tenantguard.core.context import set_request_context
from tenantguard.core.exceptions import AuthenticationRequiredError
from tenantguard.core.executor import SessionScopedExecutor, get_executor
from tenantguard.core.security import decode_token
from tenantguard.features.auth.schemas import Principal, TokenPayload
from tenantguard.models import Company, TenantStatus, User
from tenantguard.policy import Role, get_policy, parse_modules

logger = logging.getLogger(__name__)

# Security schemes
bearer_scheme = HTTPBearer(auto_error=False)


def principal_query(user_id: int):
    """User joined with its company snapshot; soft-deleted or inactive users never match."""
    return (
        select(
            User.id,
            User.email,
            User.full_name,
            User.user_role,
            User.permissions,
            User.company_id,
            Company.status.label("company_status"),
            Company.plan.label("company_plan"),
            Company.enabled_modules.label("company_modules"),
        )
        .outerjoin(Company, Company.id == User.company_id)
        .where(
            User.id == user_id,
            User.deleted_at.is_(None),
            User.status == "active",
        )
    )


def build_principal(row: dict) -> Principal:
    """
    Map a user/company row to a Principal.

    A company without an explicit module list gets the modules of its plan.
    """
    try:
        role = Role(row["user_role"])
    except ValueError:
        logger.warning(f"Unknown role '{row['user_role']}' for user {row['id']}")
        raise AuthenticationRequiredError()

    modules = row.get("company_modules")
    if modules is None and row.get("company_plan"):
        plan = get_policy().plan(row["company_plan"])
        tenant_modules = plan.modules if plan else frozenset()
    else:
        tenant_modules = parse_modules(modules)

    status = row.get("company_status")

    return Principal(
        id=row["id"],
        role=role,
        email=row.get("email"),
        name=row.get("full_name"),
        tenant_id=row.get("company_id"),
        tenant_status=TenantStatus(status) if status else None,
        tenant_modules=tenant_modules,
        tenant_plan=row.get("company_plan"),
        permissions=tuple(row.get("permissions") or ()),
    )


async def get_current_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    executor: Annotated[SessionScopedExecutor, Depends(get_executor)],
) -> Principal:
    """
    Resolve the authenticated principal from a JWT bearer token.

    Every failure surfaces as the same 401 with no further detail.
    """
    if not credentials:
        raise AuthenticationRequiredError()

    try:
        payload = TokenPayload.model_validate(decode_token(credentials.credentials))
        user_id = int(payload.sub)
    except (JWTError, ValidationError, ValueError):
        raise AuthenticationRequiredError()

    if payload.type != "access":
        raise AuthenticationRequiredError()

    # Runs unbound: the tenant is not known until the user row is read
    result = await executor.execute(principal_query(user_id))
    row = result.first()
    if row is None:
        logger.warning(f"Token valid but user not found or inactive: {user_id}")
        raise AuthenticationRequiredError()

    principal = build_principal(row)

    request.state.principal = principal
    request.state.user_id = principal.id
    set_request_context(user_id=principal.id)

    return principal


# Type aliases for cleaner code
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
