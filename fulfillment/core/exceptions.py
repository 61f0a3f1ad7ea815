"""
Domain error taxonomy.

Every error carries the HTTP status it maps to and a stable machine-readable
code. Services raise these; the handlers registered in ``fulfillment.main``
render them into the ``{"success": false, "error", "code"}`` envelope.
"""
from typing import Any, Dict, Optional


class FulfillmentError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code: int = 500
    code: str = "UNEXPECTED_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(FulfillmentError):
    """Missing or malformed input."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(FulfillmentError):
    """Referenced row does not exist."""
    status_code = 404
    code = "NOT_FOUND"


class AuthorizationError(FulfillmentError):
    """Caller acting on another user's resource."""
    status_code = 403
    code = "FORBIDDEN"


class InsufficientStock(FulfillmentError):
    """Available quantity (stock - reserved) does not cover the request."""
    status_code = 400
    code = "INSUFFICIENT_STOCK"


class ReservationMismatch(FulfillmentError):
    """Confirm requested for more than is currently reserved."""
    status_code = 400
    code = "RESERVATION_MISMATCH"


class DuplicateActiveLock(FulfillmentError):
    """User already has a locked bid pending payment."""
    status_code = 400
    code = "DUPLICATE_ACTIVE_LOCK"


class InvalidStateTransition(FulfillmentError):
    """Bid / enquiry / locked bid is not in a state that allows the action."""
    status_code = 400
    code = "INVALID_STATE_TRANSITION"


class UpstreamStoreError(FulfillmentError):
    """Database call failed."""
    status_code = 500
    code = "STORE_ERROR"
