"""
User management endpoints inside the caller's company.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import insert, select, update

from tenantguard.core.exceptions import ConflictError, ResourceNotFoundError
from tenantguard.core.executor import SessionScopedExecutor, TransactionHandle, get_executor
from tenantguard.features.audit.sink import AuditSink, get_audit_sink
from tenantguard.features.permissions.dependencies import (
    require_action,
    require_module,
    require_ownership,
    require_plan_capacity,
)
from tenantguard.features.permissions.guard import PlanUsage, check_role_hierarchy
from tenantguard.features.tenancy.resolver import TenantContext
from tenantguard.models import User
from tenantguard.policy import Action, LimitName, Module, Role
from tenantguard.schemas.user import RoleUpdate, UserCreate, UserRead

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    dependencies=[Depends(require_module(Module.USERS))],
)

_USER_COLUMNS = User.__table__


def _active_users():
    return select(_USER_COLUMNS).where(User.deleted_at.is_(None))


@router.get("/", response_model=list[UserRead])
async def list_users(
    ctx: Annotated[TenantContext, Depends(require_action(Action.READ, "users"))],
    executor: Annotated[SessionScopedExecutor, Depends(get_executor)],
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
) -> list[dict]:
    """List users of the current company."""
    statement = ctx.scope_select(_active_users(), User.company_id)
    statement = statement.order_by(User.id).offset(skip).limit(limit)

    result = await executor.execute(statement, tenant_id=ctx.tenant_id)
    return result.rows


@router.get(
    "/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_ownership("user_id"))],
)
async def get_user(
    user_id: int,
    ctx: Annotated[TenantContext, Depends(require_action(Action.READ, "users"))],
    executor: Annotated[SessionScopedExecutor, Depends(get_executor)],
) -> dict:
    """
    Get a user by id.

    Managers and above see anyone in their company; other roles only themselves.
    """
    statement = ctx.scope_select(_active_users().where(User.id == user_id), User.company_id)
    result = await executor.execute(statement, tenant_id=ctx.tenant_id)

    user = result.first()
    if user is None:
        raise ResourceNotFoundError("User not found")
    return user


@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    ctx: Annotated[TenantContext, Depends(require_action(Action.CREATE, "users", audit=True))],
    usage: Annotated[PlanUsage | None, Depends(require_plan_capacity(LimitName.USERS))],
    executor: Annotated[SessionScopedExecutor, Depends(get_executor)],
    audit_sink: Annotated[AuditSink, Depends(get_audit_sink)],
) -> dict:
    """
    Create a user in the current company.

    The new role must rank below the caller's, and the company must have
    room left on its plan.
    """
    check_role_hierarchy(ctx, payload.role, audit_sink=audit_sink)
    tenant_id = ctx.require_tenant()

    values = ctx.scope_values({
        "email": payload.email,
        "full_name": payload.full_name,
        "user_role": payload.role.value,
        "permissions": payload.permissions or None,
        "status": "active",
    })

    async def work(tx: TransactionHandle) -> dict:
        existing = await tx.execute(select(User.id).where(User.email == payload.email))
        if existing.first() is not None:
            raise ConflictError("Email already registered")
        result = await tx.execute(insert(User).values(**values).returning(*_USER_COLUMNS.c))
        return result.first()

    user = await executor.run_transaction(work, tenant_id=tenant_id)

    logger.info(
        "user_created",
        user_id=user["id"],
        tenant_id=tenant_id,
        role=payload.role.value,
        users_before=usage.current if usage else None,
    )
    return user


@router.patch("/{user_id}/role", response_model=UserRead)
async def update_user_role(
    user_id: int,
    payload: RoleUpdate,
    ctx: Annotated[TenantContext, Depends(require_action(Action.UPDATE, "users", audit=True))],
    executor: Annotated[SessionScopedExecutor, Depends(get_executor)],
    audit_sink: Annotated[AuditSink, Depends(get_audit_sink)],
) -> dict:
    """
    Change a user's role.

    Both the user's current role and the requested role must rank below
    the caller's.
    """
    check_role_hierarchy(ctx, payload.role, audit_sink=audit_sink)
    tenant_id = ctx.require_tenant()

    async def work(tx: TransactionHandle) -> dict:
        lookup = ctx.scope_select(_active_users().where(User.id == user_id), User.company_id)
        target = (await tx.execute(lookup)).first()
        if target is None:
            raise ResourceNotFoundError("User not found")

        check_role_hierarchy(ctx, Role(target["user_role"]), audit_sink=audit_sink)

        result = await tx.execute(
            update(User)
            .where(User.id == user_id, User.company_id == tenant_id)
            .values(user_role=payload.role.value)
            .returning(*_USER_COLUMNS.c)
        )
        return result.first()

    user = await executor.run_transaction(work, tenant_id=tenant_id)

    logger.info(
        "user_role_changed",
        user_id=user_id,
        tenant_id=tenant_id,
        new_role=payload.role.value,
        changed_by=ctx.principal.id,
    )
    return user
