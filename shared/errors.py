"""
Shared error handling for the access authorization layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel
from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for the access authorization layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthorizationError(AccessLayerException):
    """Authorization-related errors."""

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class ConstraintParameterError(AccessLayerException):
    """A constraint node was built with an invalid parameter."""

    def __init__(self, message: str = "Invalid constraint parameter", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONSTRAINT_PARAMETER_ERROR", message, details)


class InvalidLogicalOperatorError(ConstraintParameterError):
    """Logical operator is neither 'and' nor 'or'."""

    def __init__(self, operator: Any):
        super().__init__(
            f"{operator!r} is an invalid logical operator",
            {"operator": repr(operator)}
        )


class UnsupportedOperatorError(AccessLayerException):
    """Comparison operator is not recognized at evaluation time."""

    def __init__(self, operator: Any):
        super().__init__(
            "UNSUPPORTED_OPERATOR",
            f"Invalid operator: {operator}",
            {"operator": repr(operator)}
        )


class StoreUnavailableError(AccessLayerException):
    """The ability/role store could not be read."""

    def __init__(self, operation: str, message: str = "Ability store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_UNAVAILABLE", f"{operation}: {message}", details)
        self.operation = operation


class CacheBackendError(AccessLayerException):
    """The cache backend failed on a path where failure cannot be ignored."""

    def __init__(self, message: str = "Cache backend error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_BACKEND_ERROR", message, details)


class InvalidModelIdentifierError(AccessLayerException):
    """A role reference could not be resolved to a name or key."""

    def __init__(self, identifier: Any):
        super().__init__(
            "INVALID_MODEL_IDENTIFIER",
            "Cannot resolve model identifier: expected a name, key or role",
            {"identifier": repr(identifier)}
        )


class InvalidGateSlotError(AccessLayerException):
    """Gate slot is neither 'before' nor 'after'."""

    def __init__(self, slot: Any):
        super().__init__(
            "INVALID_GATE_SLOT",
            f"{slot} is an invalid gate slot",
            {"slot": repr(slot)}
        )
