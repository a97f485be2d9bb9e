"""
Pydantic schemas for Company.
"""

from datetime import datetime

from pydantic import Field

from tenantguard.models.tenant import TenantStatus
from tenantguard.schemas.common import BaseSchema


class CompanyRead(BaseSchema):
    """Schema for reading company data."""

    id: int
    name: str
    status: TenantStatus
    plan: str
    enabled_modules: list[str] | None = Field(
        None, description="NULL means the plan's module set applies"
    )
    created_at: datetime
    updated_at: datetime


class CompanyUsage(BaseSchema):
    """Current usage against the plan ceilings. ``None`` limit means unlimited."""

    users: int
    user_limit: int | None
    storage_bytes: int
    storage_limit_bytes: int | None


class CompanyReadWithUsage(CompanyRead):
    usage: CompanyUsage
