"""
Custom Exceptions

Request-boundary errors. The services return typed results for expected
outcomes; only the API layer turns a rejecting result into one of these.

Every class carries an error_type that is rendered as the "type" field of
the error response (see main.app_error_handler).
"""
from typing import Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Base class for errors rendered with a stable error_type."""

    error_type = "error"

    def __init__(self, status_code: int, detail: str, headers: Optional[dict] = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class AuthenticationError(AppError):
    """No valid session or credentials."""

    error_type = "unauthenticated"

    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, detail)


class NoOrganizationSelectedError(AppError):
    """Authenticated, but the session has no current organization."""

    error_type = "no_organization_selected"

    def __init__(self, detail: str = "You must select an organization to access this resource"):
        super().__init__(status.HTTP_403_FORBIDDEN, detail)


class ForbiddenError(AppError):
    """
    Authenticated with a tenant context, but not a member or the role is too low.

    Cross-tenant attempts land here and are logged as security events.
    """

    error_type = "forbidden"

    def __init__(self, detail: str = "Permission denied"):
        super().__init__(status.HTTP_403_FORBIDDEN, detail)


class ResetTokenError(AppError):
    """Password reset token rejected. error_type is the specific reason."""

    MESSAGES = {
        "invalid_token": "Invalid or unknown reset token",
        "expired_token": "This reset link has expired",
        "used_token": "This reset link has already been used",
    }

    def __init__(self, reason: str):
        self.error_type = reason
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            self.MESSAGES.get(reason, "Invalid or unknown reset token"),
        )


class NotFoundError(AppError):
    """Referenced entity is absent."""

    error_type = "not_found"

    def __init__(self, entity: str = "Resource"):
        super().__init__(status.HTTP_404_NOT_FOUND, f"{entity} not found")


class ConflictError(AppError):
    """Uniqueness violation, e.g. duplicate email or slug."""

    error_type = "conflict"

    def __init__(self, detail: str = "Conflict"):
        super().__init__(status.HTTP_409_CONFLICT, detail)


class InvalidInputError(AppError):
    """Raised when input validation fails beyond what the schemas catch."""

    error_type = "invalid_input"

    def __init__(self, detail: str = "Invalid input"):
        super().__init__(status.HTTP_400_BAD_REQUEST, detail)


class ServiceUnavailableError(AppError):
    """
    Backing store unreachable.

    Retryable infrastructure failure; never reported as an auth outcome.
    """

    error_type = "unavailable"

    def __init__(self, detail: str = "Service temporarily unavailable"):
        super().__init__(status.HTTP_503_SERVICE_UNAVAILABLE, detail, headers={"Retry-After": "1"})

