"""
Shared error handling for Route Guardian.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class GuardianException(Exception):
    """Base exception for Route Guardian."""

    status_code = 400

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


class AuthenticationError(GuardianException):
    """No usable identity on the request."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class AuthorizationError(GuardianException):
    """Identity is known but the route guard denied access."""

    status_code = 403

    def __init__(self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class ValidationError(GuardianException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "VALIDATION_ERROR"):
        super().__init__(code, message, details)


class RuleSyntaxError(ValidationError):
    """A guard statement could not be parsed or expanded."""

    def __init__(self, message: str = "Invalid guard rule", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="RULE_SYNTAX_ERROR")


class ConfigurationError(GuardianException):
    """Rule or key sources are unusable."""

    status_code = 500

    def __init__(self, message: str = "Configuration error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)
