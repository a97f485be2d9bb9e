"""
Authentication-specific schemas.
"""

from pydantic import ConfigDict, Field

from tenantguard.models.tenant import TenantStatus
from tenantguard.policy import ADMINISTRATOR_ROLE, TOP_LEVEL_ROLE, Module, Role
from tenantguard.schemas.common import BaseSchema


class TokenPayload(BaseSchema):
    """Decoded JWT token payload."""

    sub: str = Field(..., description="Subject (user ID)")
    exp: int = Field(..., description="Expiration timestamp")
    iat: int = Field(..., description="Issued at timestamp")
    type: str = Field(..., description="Token type (access/refresh)")


class Principal(BaseSchema):
    """
    The authenticated actor for one request.

    Built once from a verified credential and never mutated or persisted.
    Tenant fields are a snapshot of the company row at authentication time.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    role: Role
    email: str | None = None
    name: str | None = None
    tenant_id: int | None = Field(None, description="Owning company (None for platform admins)")
    tenant_status: TenantStatus | None = None
    tenant_modules: frozenset[Module] = frozenset()
    tenant_plan: str | None = None
    permissions: tuple[str, ...] = Field((), description="Explicit permission tokens")

    @property
    def is_top_level(self) -> bool:
        return self.role is TOP_LEVEL_ROLE

    @property
    def uses_explicit_permissions(self) -> bool:
        """Explicit grants narrow the role only when present and not administrator-equivalent."""
        return bool(self.permissions) and self.role is not ADMINISTRATOR_ROLE
