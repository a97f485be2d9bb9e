"""
Pydantic schemas for User.
"""

from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from tenantguard.policy import Module, Role
from tenantguard.schemas.common import BaseSchema


class UserBase(BaseSchema):
    """Base user schema."""

    email: EmailStr = Field(..., description="User email address")
    full_name: str | None = Field(None, max_length=255, description="User's full name")


class UserCreate(UserBase):
    """
    Schema for creating a user inside the caller's company.

    Credentials are provisioned by the identity service, not here.
    """

    role: Role = Field(Role.USER, description="Role of the new user")
    permissions: list[str] = Field(default_factory=list, description="Explicit permission tokens")

    @field_validator("permissions")
    @classmethod
    def validate_permissions(cls, v: list[str]) -> list[str]:
        cleaned = [token.strip() for token in v if token.strip()]
        if len(cleaned) != len(set(cleaned)):
            raise ValueError("Permission tokens must be unique")
        return cleaned


class RoleUpdate(BaseSchema):
    """Schema for changing a user's role."""

    role: Role


class UserRead(UserBase):
    """Schema for reading user data."""

    id: int
    user_role: Role
    permissions: list[str] | None = None
    status: str
    company_id: int | None
    created_at: datetime
    updated_at: datetime


class AccessRead(BaseSchema):
    """What the current principal may do, as seen by the guard."""

    user_id: int
    role: Role
    role_level: int
    company_id: int | None
    bypass: bool
    scope: str
    plan: str | None
    actions: list[str]
    modules: list[Module]
