"""
Error Taxonomy

Every failure raised by the core is an EnforcementError subclass carrying
a stable code, an HTTP status for the API layer, and a details mapping.

Domain errors (bad input, illegal transitions, duplicates) must not be
retried. Store errors (unreachable or slow store) are marked retryable so
callers can distinguish "no data" from "data unavailable".
"""

from typing import Any, Dict, Optional


class EnforcementError(Exception):
    """Base class for all errors surfaced by the enforcement core"""

    code = "INTERNAL_ERROR"
    http_status = 500
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class NotFound(EnforcementError):
    """Unknown violation or challan id"""
    code = "NOT_FOUND"
    http_status = 404


class ValidationError(EnforcementError):
    """Malformed or out-of-range input"""
    code = "VALIDATION_ERROR"
    http_status = 422


class InvalidTransition(EnforcementError):
    """Status change not permitted from the current state"""
    code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, entity: str, entity_id: str, current: str, attempted: str):
        super().__init__(
            f"Cannot move {entity} {entity_id} from '{current}' to '{attempted}'",
            {"id": entity_id, "current": current, "attempted": attempted},
        )
        self.current = current
        self.attempted = attempted


class InvalidState(EnforcementError):
    """Operation requires the record to be in a different state"""
    code = "INVALID_STATE"
    http_status = 409


class Conflict(EnforcementError):
    """Duplicate challan issuance attempt"""
    code = "CONFLICT"
    http_status = 409


class StoreError(EnforcementError):
    """Record store could not serve the request"""
    retryable = True


class Unavailable(StoreError):
    """Record store unreachable"""
    code = "UNAVAILABLE"
    http_status = 503


class StoreTimeout(StoreError):
    """Record store did not answer within the configured timeout"""
    code = "TIMEOUT"
    http_status = 504
