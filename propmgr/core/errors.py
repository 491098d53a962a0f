"""
Typed service errors.

Services raise these; the HTTP layer (see propmgr.main) renders every kind as
{"error": <kind>, "message": ..., "details": ...} with the matching status code.
"""
from typing import Any, Optional


class AppError(Exception):
    status_code = 500
    kind = "internal_error"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.kind, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """Malformed input, unknown enum value, bad date format."""
    status_code = 400
    kind = "validation_error"


class AuthorizationError(AppError):
    status_code = 403
    kind = "authorization_error"


class NotFoundError(AppError):
    status_code = 404
    kind = "not_found"


class ConflictError(AppError):
    """Uniqueness or invariant violation."""
    status_code = 409
    kind = "conflict"


class DependencyError(AppError):
    """Destructive operation blocked by active dependents."""
    status_code = 400
    kind = "dependency_error"


class InternalError(AppError):
    status_code = 500
    kind = "internal_error"
