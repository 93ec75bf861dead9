"""
Domain error taxonomy.

Workflow code raises these; app/main.py renders them as JSON responses.
Validation and authorization failures are always raised before any write.
"""
from __future__ import annotations

from typing import Any, Optional


class RenewalError(Exception):
    http_status = 500
    default_code = "internal_error"

    def __init__(self, message: str, *, code: Optional[str] = None, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        body.update(self.context)
        return body


class ValidationError(RenewalError):
    """Bad input shape, enum violation or missing required field."""
    http_status = 400
    default_code = "validation_failed"


class InvalidTransitionError(ValidationError):
    """The requested action is not legal from the decision's current status."""
    http_status = 409
    default_code = "invalid_transition"


class AuthenticationError(RenewalError):
    http_status = 401
    default_code = "authentication_required"


class AuthorizationError(RenewalError):
    """Role too low or account inactive. Carries the caller's current role."""
    http_status = 403
    default_code = "forbidden"

    def __init__(self, message: str, *, current_role: Optional[str] = None, **context: Any) -> None:
        super().__init__(message, current_role=current_role, **context)
        self.current_role = current_role


class NotFoundError(RenewalError):
    http_status = 404
    default_code = "not_found"


class DependencyError(RenewalError):
    """External store or generative-text provider unavailable."""
    http_status = 503
    default_code = "dependency_unavailable"
