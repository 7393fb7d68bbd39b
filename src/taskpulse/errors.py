"""
Error taxonomy for TaskPulse.

Every failure that reaches the HTTP boundary is one of these exceptions.
Each carries the HTTP status it maps to, a human-readable message and an
optional dict of diagnostic details (hidden in production).
"""

from typing import Any, Dict, Optional


class TaskPulseError(Exception):
    """Base exception for all TaskPulse errors."""

    status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self, include_details: bool = True) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message}
        if include_details and self.details:
            body["details"] = self.details
        return body


class Unauthorized(TaskPulseError):
    """Missing, malformed, expired or revoked credential."""

    status = 401

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class Forbidden(TaskPulseError):
    """
    Raised when an authenticated principal is denied by access control.

    Attributes:
        user_id: The principal who was denied
        action: The action that was denied
        resource: The resource kind the action targeted
        reason: Short machine-readable denial reason
    """

    status = 403

    def __init__(
        self,
        user_id: str,
        action: str,
        resource: str,
        reason: str = "insufficient_permission",
    ):
        self.user_id = user_id
        self.action = action
        self.resource = resource
        self.reason = reason

        super().__init__(
            "Forbidden: insufficient permissions",
            {"action": action, "resource": resource, "reason": reason},
        )


class NotFound(TaskPulseError):
    """Resource is absent or soft-deleted."""

    status = 404

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        details = {"resource": resource}
        if resource_id:
            details["id"] = resource_id
        super().__init__(f"{resource.capitalize()} not found", details)
        self.resource = resource
        self.resource_id = resource_id


class ValidationFailed(TaskPulseError):
    """Malformed input the caller can correct."""

    status = 400

    def __init__(self, message: str, field: Optional[str] = None, errors: Optional[list] = None):
        details: Dict[str, Any] = {}
        if field:
            details["field"] = field
        if errors:
            details["errors"] = errors
        super().__init__(message, details)
        self.field = field


class Conflict(TaskPulseError):
    """A write collided with existing state (uniqueness, membership)."""

    status = 409


class Internal(TaskPulseError):
    """Unexpected persistence or transport failure."""

    status = 500

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        details = {"operation": operation}
        if cause:
            details["cause"] = str(cause)
        super().__init__("Internal server error", details)
        self.operation = operation
        self.cause = cause
