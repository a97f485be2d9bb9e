"""
User model for authentication and authorization.
"""

from sqlalchemy import JSON, BigInteger, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from tenantguard.models.base import BaseModel


class User(BaseModel):
    """User account model."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="User email address (unique)"
    )

    full_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="User's full name"
    )

    user_role: Mapped[str] = mapped_column(
        String(30),
        default="user",
        nullable=False,
        comment="Role name (see tenantguard.policy.Role)"
    )

    permissions: Mapped[list[str] | None] = mapped_column(
        JSON,
        nullable=True,
        comment="Explicit permission tokens; empty means role defaults only"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default="active",
        nullable=False,
        comment="Account status"
    )

    # NULL only for platform-level super admins
    company_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("companies.id"),
        nullable=True,
        index=True,
        comment="Owning company"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
