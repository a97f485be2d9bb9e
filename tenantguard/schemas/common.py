"""
Common/shared Pydantic schemas.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


# Base configuration for all schemas
class BaseSchema(BaseModel):
    """
    Base schema with common configuration.

    All schemas should inherit from this.
    """

    model_config = ConfigDict(
        from_attributes=True,  # Allow ORM mode (SQLAlchemy objects)
        populate_by_name=True,  # Allow population by field name or alias
        str_strip_whitespace=True,  # Strip whitespace from strings
    )


class ErrorResponse(BaseModel):
    """Body of every error the API returns."""

    success: bool = False
    error: str
    code: str
    timestamp: str
    details: dict[str, Any] | None = None
