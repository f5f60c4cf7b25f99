"""
Domain error types.

Services raise these; the exception handlers in ``citycare.main`` turn them
into the ``{success: false, ...}`` response envelope.
"""

from typing import Any


class CityCareError(Exception):
    """Base class for errors that map onto an HTTP status code."""

    status_code = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        return {"success": False, "message": self.message, **self.extra}


class ValidationError(CityCareError):
    """A required field is missing or a value is out of bounds."""

    status_code = 400

    def __init__(self, message: str = "Validation error", errors: list[str] | None = None):
        if errors:
            super().__init__(message, errors=errors)
        else:
            super().__init__(message)
        self.errors = errors or []


class ForbiddenError(CityCareError):
    """The caller is not allowed to perform the operation."""

    status_code = 403


class NotFoundError(CityCareError):
    """Raised when a referenced user, issue or notification does not exist."""

    status_code = 404


class DuplicateKeyError(CityCareError):
    """A unique field (email or external user id) is already taken."""

    status_code = 409

    def __init__(self, field: str):
        super().__init__(f"A user with this {field} already exists", field=field)
        self.field = field
