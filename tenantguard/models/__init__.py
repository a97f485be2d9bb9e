"""
Database models package.
"""

from tenantguard.core.database import Base
from tenantguard.models.base import BaseModel
from tenantguard.models.file_upload import FileUpload
from tenantguard.models.tenant import Company, TenantStatus
from tenantguard.models.user import User

__all__ = [
    "Base",
    "BaseModel",
    "Company",
    "TenantStatus",
    "User",
    "FileUpload",
]
