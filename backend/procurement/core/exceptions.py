"""Domain error taxonomy for the invoice validation engine.

Every error carries a stable ``code`` so callers (API handlers, workers,
tests) can branch on the failure kind instead of parsing messages, plus the
HTTP status the API layer maps it to. Persistence errors raised by
SQLAlchemy are never wrapped; they propagate as-is.
"""
import enum


class ProcurementError(Exception):
    code = "procurement_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigNotFoundError(ProcurementError):
    """Requested rule type has no configuration in the DB or the environment."""

    code = "config_not_found"
    status_code = 404


class ValidationError(ProcurementError):
    """Malformed input to a workflow operation (e.g. a too-short reason)."""

    code = "validation_error"
    status_code = 422


class NotFoundError(ProcurementError):
    code = "not_found"
    status_code = 404


class ConflictError(ProcurementError):
    """Transition attempted out of a terminal validation state."""

    code = "conflict"
    status_code = 409


class BusinessRuleError(ProcurementError):
    """Operation forbidden by the business state of the parent invoice."""

    code = "business_rule"
    status_code = 422


class AuthFailureReason(str, enum.Enum):
    NOT_OWNER_OR_PRIVILEGED = "NOT_OWNER_OR_PRIVILEGED"
    ADMIN_REQUIRED = "ADMIN_REQUIRED"


class UnauthorizedError(ProcurementError):
    code = "unauthorized"
    status_code = 403

    def __init__(self, message: str, reason: AuthFailureReason):
        super().__init__(message)
        self.reason = reason
