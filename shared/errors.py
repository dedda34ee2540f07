"""
Shared error handling for the Rodin Access Gateway.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class GatewayError(Exception):
    """Base exception for gateway services."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        # Get trace ID from current span
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


class ValidationError(GatewayError):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class AuthenticationError(GatewayError):
    """Upstream authentication errors (token acquisition or expiry)."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class NotFoundError(GatewayError):
    """The upstream does not know the requested client."""

    status_code = 404

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class UpstreamError(GatewayError):
    """Upstream call failed after exhausting retries and fallback."""

    status_code = 502

    def __init__(
        self,
        message: str = "Upstream service error",
        *,
        client_id: Optional[str] = None,
        phase: Optional[str] = None,
        elapsed_ms: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        if client_id is not None:
            merged["client_id"] = client_id
        if phase is not None:
            merged["phase"] = phase
        if elapsed_ms is not None:
            merged["elapsed_ms"] = elapsed_ms
        self.client_id = client_id
        self.phase = phase
        self.elapsed_ms = elapsed_ms
        super().__init__("UPSTREAM_ERROR", message, merged)
