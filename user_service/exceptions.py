"""Domain errors raised by the user service and mapped to HTTP by the API layer."""

from typing import Any

from .schemas import ErrorCode


class UserServiceError(Exception):
    """Base class for errors reported straight to the caller.

    Subclasses pin the HTTP status and error code; instances carry the
    message and structured details used in the error response body.
    """
    status_code: int = 500
    error_code: str = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_detail(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class UserNotFoundError(UserServiceError):
    """No active user with the requested id."""
    status_code = 404
    error_code = ErrorCode.USER_NOT_FOUND

    def __init__(self, user_id: int, message: str | None = None):
        super().__init__(
            message or f"User with ID {user_id} not found",
            {"user_id": user_id},
        )
        self.user_id = user_id


class EmailConflictError(UserServiceError):
    """Email already belongs to another user."""
    status_code = 409
    error_code = ErrorCode.DUPLICATE_EMAIL

    def __init__(self, email: str):
        super().__init__("Email already in use", {"email": email})
        self.email = email


class CacheUnavailableError(UserServiceError):
    """Cache is disconnected and the cache runs fail-closed."""
    status_code = 503
    error_code = ErrorCode.CACHE_UNAVAILABLE

    def __init__(self, operation: str, key: str):
        super().__init__(
            "Cache store is unavailable",
            {"operation": operation, "key": key},
        )
