"""
Shared error handling for the River Monitoring Portal.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from .logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class PortalException(Exception):
    """Base exception for portal services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(PortalException):
    """Malformed or missing input field."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class AuthenticationError(PortalException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class AuthorizationError(PortalException):
    """Authorization-related errors."""

    status_code = 403

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class AuthorizationDenied(AuthorizationError):
    """A deny decision from the authorization engine.

    ``reason`` is the stable category string (e.g. ``cross-tenant-denied``);
    callers and tests should match on it rather than on the message.
    """

    def __init__(self, reason: str, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        payload = dict(details or {})
        payload["reason"] = reason
        super().__init__(message or f"Access denied: {reason}", payload)


class NotFoundError(PortalException):
    """Requested record does not exist (or is hidden from the caller)."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ConflictError(PortalException):
    """Unique-constraint violation reported by the persistence layer."""

    status_code = 409

    def __init__(
        self,
        message: str = "Conflict",
        constraint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.constraint = constraint
        payload = dict(details or {})
        if constraint:
            payload["constraint"] = constraint
        super().__init__("CONFLICT", message, payload)


class SyncAlreadyRunningError(PortalException):
    """A manual sync was requested while another run is in flight."""

    status_code = 409

    def __init__(self, message: str = "A sync run is already in progress", details: Optional[Dict[str, Any]] = None):
        super().__init__("SYNC_ALREADY_RUNNING", message, details)


class RateLimitError(PortalException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)


class ExternalServiceError(PortalException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        self.service = service
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class ExternalFetchError(ExternalServiceError):
    """The external water-level feed could not be fetched or decoded."""

    def __init__(self, message: str = "Feed fetch failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("water_level_feed", message, details)


class ServiceError(PortalException):
    """Service-related errors."""

    status_code = 503

    def __init__(self, code: str = "SERVICE_ERROR", message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__(code, message, details)


class SyncNotConfiguredError(ServiceError):
    """The sync job has no feed URL to fetch from."""

    def __init__(self, message: str = "Feed URL is not configured"):
        super().__init__("SYNC_NOT_CONFIGURED", message)
