"""
shared/exceptions.py
Domain exceptions for the directory.
Raised by the service layer and mapped to HTTP responses in main.py.
"""

from typing import Any, Dict, List, Optional


class DirectoryError(Exception):
    """Base exception for all directory errors."""

    status_code: int = 500
    default_message: str = "An internal server error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(DirectoryError):
    """Missing or out-of-range input. Carries field-level detail."""

    status_code = 400
    default_message = "Invalid input"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class NotFoundError(DirectoryError):
    """Referenced entity does not exist."""

    status_code = 404
    default_message = "Not found"


class ForbiddenError(DirectoryError):
    """Caller is not allowed to perform the action (e.g. wrong delete code)."""

    status_code = 403
    default_message = "Forbidden"


class ConflictError(DirectoryError):
    """Uniqueness violation, e.g. a duplicate username at signup."""

    status_code = 409
    default_message = "Conflict"


class UnauthenticatedError(DirectoryError):
    """A session is required for this operation."""

    status_code = 401
    default_message = "Login required"


class UpstreamError(DirectoryError):
    """Image storage failure. Callers degrade instead of failing the parent operation."""

    status_code = 502
    default_message = "Image storage unavailable"


class InternalError(DirectoryError):
    """Storage unavailable or unexpected fault. No partial state is committed."""

    status_code = 500
