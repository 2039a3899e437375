"""
Shared error handling for the Dashboard BFF.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from shared.logging import get_request_id


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class BffException(Exception):
    """Base exception for the BFF."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=get_request_id(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthError(BffException):
    """Missing, malformed or expired session."""

    status_code = 401

    def __init__(self, message: str = "Authentication required", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class CaptchaError(BffException):
    """Captcha token rejected or could not be verified."""

    status_code = 400

    def __init__(self, message: str = "Captcha verification failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("CAPTCHA_ERROR", message, details)


class ValidationError(BffException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ConfigurationError(BffException):
    """Invalid static configuration detected at startup."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class UpstreamError(BffException):
    """Base class for upstream failures. Absorbed by the fallback chain."""

    status_code = 502
    error_type = "upstream_error"

    def __init__(self, domain: str, message: str = "Upstream error", details: Optional[Dict[str, Any]] = None):
        self.domain = domain
        super().__init__("UPSTREAM_ERROR", f"{domain}: {message}", details)


class UpstreamTimeout(UpstreamError):
    """Upstream did not answer before the deadline."""

    error_type = "timeout"


class UpstreamRateLimited(UpstreamError):
    """Upstream answered 429."""

    error_type = "rate_limited"


class UpstreamUnavailable(UpstreamError):
    """Connection failure, 5xx, unexpected status or open circuit."""

    error_type = "unavailable"


class MalformedResponse(UpstreamError):
    """Upstream body could not be parsed into the normalized shape."""

    error_type = "malformed"
