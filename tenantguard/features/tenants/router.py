"""
Company endpoints.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select

from tenantguard.core.exceptions import ResourceNotFoundError
from tenantguard.core.executor import SessionScopedExecutor, get_executor
from tenantguard.features.permissions.usage import ExecutorUsageCounter, get_usage_counter
from tenantguard.features.tenancy.dependencies import (
    AdminTenantContext,
    CurrentTenantContext,
    ValidatedCompanyId,
)
from tenantguard.models import Company
from tenantguard.policy import UNLIMITED, LimitName, get_policy
from tenantguard.schemas.tenant import CompanyRead, CompanyReadWithUsage, CompanyUsage

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/tenants", tags=["Tenants"])


def _company_query(company_id: int):
    return select(Company.__table__).where(
        Company.id == company_id,
        Company.deleted_at.is_(None),
    )


async def _load_company(executor: SessionScopedExecutor, company_id: int) -> dict:
    result = await executor.execute(_company_query(company_id), tenant_id=company_id)
    company = result.first()
    if company is None:
        raise ResourceNotFoundError("Company not found")
    return company


async def _usage(
    company: dict,
    usage_counter: ExecutorUsageCounter,
) -> CompanyUsage:
    plan = get_policy().plan(company["plan"])

    def ceiling(limit: LimitName) -> int | None:
        if plan is None:
            return None
        value = plan.ceiling(limit)
        return None if value is UNLIMITED else value

    return CompanyUsage(
        users=await usage_counter.count(LimitName.USERS, company["id"]) or 0,
        user_limit=ceiling(LimitName.USERS),
        storage_bytes=await usage_counter.count(LimitName.STORAGE, company["id"]) or 0,
        storage_limit_bytes=ceiling(LimitName.STORAGE),
    )


@router.get("/", response_model=list[CompanyRead])
async def list_companies(
    ctx: AdminTenantContext,  # Platform administrators only
    executor: Annotated[SessionScopedExecutor, Depends(get_executor)],
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
) -> list[dict]:
    """
    List companies (platform administrators only).

    A target company (query or header) narrows the listing to that company.
    """
    statement = select(Company.__table__).where(Company.deleted_at.is_(None))
    statement = ctx.scope_select(statement, Company.id)
    statement = statement.order_by(Company.created_at.desc()).offset(skip).limit(limit)

    result = await executor.execute(statement, tenant_id=ctx.tenant_id)
    return result.rows


@router.get("/me", response_model=CompanyReadWithUsage)
async def get_my_company(
    ctx: CurrentTenantContext,
    executor: Annotated[SessionScopedExecutor, Depends(get_executor)],
    usage_counter: Annotated[ExecutorUsageCounter, Depends(get_usage_counter)],
) -> dict:
    """
    Current company with its usage against the plan.

    For a platform administrator this is the company selected by the
    override headers.
    """
    company = await _load_company(executor, ctx.require_tenant())
    return {**company, "usage": await _usage(company, usage_counter)}


@router.get("/{company_id}", response_model=CompanyRead)
async def get_company(
    company_id: ValidatedCompanyId,
    executor: Annotated[SessionScopedExecutor, Depends(get_executor)],
) -> dict:
    """
    Get a company by id.

    - Platform administrators: any company
    - Everyone else: only their own company
    """
    return await _load_company(executor, company_id)
