"""Application error taxonomy shared by services, API and CLI.

Every error carries a stable machine code and an HTTP status so the API layer
can render it as ``{"ok": false, "error": {"code", "message"}}`` without
knowing where it was raised.
"""

from typing import Any, Dict

from fastapi import status


class AppError(Exception):
    """Base application error."""

    def __init__(self, message: str, code: str, http_status: int = 400):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        super().__init__(message)


class ValidationError(AppError):
    """Input failed validation."""

    def __init__(self, message: str = "Validation failed"):
        super().__init__(message, "validation_error", status.HTTP_400_BAD_REQUEST)


class NotFoundError(AppError):
    """Requested entity does not exist."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, "not_found", status.HTTP_404_NOT_FOUND)


class UnauthorizedError(AppError):
    """Caller is not authenticated."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, "unauthorized", status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    """Caller is not allowed to perform the action."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, "forbidden", status.HTTP_403_FORBIDDEN)


class PeriodClosedError(AppError):
    """Write attempted against a closed billing period."""

    def __init__(self, message: str = "period_closed"):
        super().__init__(message, "period_closed", status.HTTP_409_CONFLICT)


class DuplicatePaymentError(AppError):
    """A non-voided payment with the same fingerprint already exists."""

    def __init__(self, message: str = "Payment with the same fingerprint already exists"):
        super().__init__(message, "duplicate_payment", status.HTTP_409_CONFLICT)


class ServerError(AppError):
    """Unexpected failure."""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, "server_error", status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_response(error: AppError) -> Dict[str, Any]:
    """Create a standardized error envelope."""
    return {
        "ok": False,
        "error": {
            "code": error.code,
            "message": error.message,
        },
    }
