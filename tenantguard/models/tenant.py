"""
Company (tenant) model.

Each company is one partition of the shared store. Every tenant-owned table
carries a ``company_id`` foreign key to this table.
"""

from enum import Enum

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from tenantguard.models.base import BaseModel


class TenantStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class Company(BaseModel):
    """
    Tenant (company) model.

    Status is changed by billing/ops processes; companies are soft-deactivated
    (``deleted_at``) and never hard-deleted.
    """

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Company name"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=TenantStatus.ACTIVE.value,
        nullable=False,
        index=True,
        comment="active | suspended | inactive"
    )

    plan: Mapped[str] = mapped_column(
        String(50),
        default="starter",
        nullable=False,
        comment="Subscription plan name"
    )

    enabled_modules: Mapped[list[str] | None] = mapped_column(
        JSON,
        nullable=True,
        comment="Enabled module names; NULL falls back to the plan's modules"
    )

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name={self.name}, status={self.status})>"
