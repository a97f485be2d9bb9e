"""
Custom exception hierarchy for the application.

Every exception carries a stable error code and an HTTP status. Messages are
what the caller sees, so authorization failures keep them generic; internal
context goes into ``details`` and is only rendered where ``expose_details``
is set (plan limits).
"""

from datetime import datetime, timezone
from typing import Any

from fastapi import status


class TenantGuardException(Exception):
    """Base exception for all application exceptions."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    default_message: str = "An internal error occurred"
    expose_details: bool = False

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_response_body(self) -> dict[str, Any]:
        """Build the JSON error body returned to clients."""
        body: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if self.expose_details and self.details:
            body["details"] = self.details
        return body


class AuthenticationRequiredError(TenantGuardException):
    """Raised when no principal could be resolved for the request."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTH_REQUIRED"
    default_message = "Authentication required"


class TenantInactiveError(TenantGuardException):
    """Raised when the resolved tenant is suspended or deactivated."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "TENANT_INACTIVE"
    default_message = "Company is inactive or suspended"


class AuthorizationError(TenantGuardException):
    """Base for access-control denials. Messages never name what would have succeeded."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "ACCESS_DENIED"
    default_message = "Insufficient permissions"


class ActionDeniedError(AuthorizationError):
    code = "ACTION_DENIED"


class ModuleDeniedError(AuthorizationError):
    code = "MODULE_DENIED"
    default_message = "Module not available"


class RoleHierarchyViolationError(AuthorizationError):
    code = "ROLE_HIERARCHY_VIOLATION"
    default_message = "Cannot create or modify a user with an equal or higher role"


class OwnershipDeniedError(AuthorizationError):
    code = "OWNERSHIP_DENIED"
    default_message = "Access denied to another user's data"


class InsufficientRoleError(AuthorizationError):
    code = "INSUFFICIENT_ROLE"


class CompanyAccessDeniedError(AuthorizationError):
    code = "COMPANY_ACCESS_DENIED"
    default_message = "Access denied to this company"


class InvalidTenantIdError(TenantGuardException):
    """Raised when a company identifier is not a positive integer."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_COMPANY_ID"
    default_message = "Invalid company id"


class MissingTargetTenantError(TenantGuardException):
    """Raised when a company-specific operation runs in global scope."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "MISSING_COMPANY_ID"
    default_message = "Company id required for this operation"


class MissingTargetIdError(TenantGuardException):
    """Raised when an ownership check has no target identifier."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "MISSING_TARGET_ID"
    default_message = "Target user id required"


class PlanLimitExceededError(TenantGuardException):
    """Raised when an operation would push a tenant past its plan ceiling."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "PLAN_LIMIT_EXCEEDED"
    expose_details = True

    def __init__(self, limit_name: str, current: int, limit: int, plan: str):
        super().__init__(
            f"Plan '{plan}' limit exceeded for {limit_name}",
            details={"current": current, "limit": limit, "plan": plan},
        )
        self.limit_name = limit_name
        self.current = current
        self.limit = limit
        self.plan = plan


class PlanConfigError(TenantGuardException):
    """Raised when a tenant references a plan the policy does not define."""

    code = "PLAN_CONFIG_ERROR"
    default_message = "Plan configuration not found"


class DataAccessError(TenantGuardException):
    """
    Raised for any failure in the query executor.

    ``stage`` records where it failed (acquire, bind, statement, commit) for
    logs only; callers see the generic message.
    """

    code = "DATA_ACCESS_FAILURE"
    default_message = "Database operation failed"

    def __init__(self, stage: str, details: dict[str, Any] | None = None):
        super().__init__(details=details)
        self.stage = stage


class ResourceNotFoundError(TenantGuardException):
    """Raised when a record does not exist inside the caller's scope."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(TenantGuardException):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = "Resource already exists"
