"""
Pydantic schemas package.
"""

from tenantguard.schemas.common import BaseSchema, ErrorResponse
from tenantguard.schemas.tenant import CompanyRead, CompanyReadWithUsage, CompanyUsage
from tenantguard.schemas.user import AccessRead, RoleUpdate, UserCreate, UserRead

__all__ = [
    # Common
    "BaseSchema",
    "ErrorResponse",
    # Company
    "CompanyRead",
    "CompanyUsage",
    "CompanyReadWithUsage",
    # User
    "UserCreate",
    "UserRead",
    "RoleUpdate",
    "AccessRead",
]
