"""Domain errors raised by the workflow services.

Every rejection carries a stable ``code`` so callers can render an actionable
message, plus the HTTP status the API layer maps it to.
"""
from typing import Optional


class WorkflowError(Exception):
    """Base class for synchronous workflow rejections."""

    status_code: int = 400
    default_code: str = "workflow_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class AuthorizationError(WorkflowError):
    """The actor's role lacks the capability for the requested action."""

    status_code = 403
    default_code = "not_authorized"


class TenantIsolationError(WorkflowError):
    """The record belongs to another tenant (or does not exist).

    Rendered exactly like a missing record so cross-tenant existence is never
    revealed.
    """

    status_code = 404
    default_code = "not_found"

    def __init__(self, resource: str = "Vehicle"):
        super().__init__(f"{resource} not found", code="not_found")


class InvalidTransitionError(WorkflowError):
    """The requested status change is not a legal edge."""

    status_code = 409
    default_code = "invalid_transition"

    def __init__(self, message: str, current: Optional[str] = None,
                 target: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message, code=code)
        self.current = current
        self.target = target


class PreconditionError(WorkflowError):
    """A required condition for the operation does not hold."""

    status_code = 422
    default_code = "precondition_failed"


class NotificationDeliveryError(Exception):
    """A transport failed to deliver a message. Logged, never propagated to callers."""

    def __init__(self, recipient: str, reason: str):
        super().__init__(f"{recipient}: {reason}")
        self.recipient = recipient
        self.reason = reason
