"""
Uploaded file metadata, counted against the storage ceiling.
"""

from sqlalchemy import BigInteger, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from tenantguard.models.base import BaseModel


class FileUpload(BaseModel):
    __tablename__ = "file_uploads"

    company_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("companies.id"),
        nullable=False,
        index=True,
    )

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)

    file_size: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        nullable=False,
        comment="Size in bytes"
    )

    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
