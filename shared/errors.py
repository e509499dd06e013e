"""
Shared error handling for the Calling Service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class CallingServiceException(Exception):
    """Base exception for Calling Service errors."""

    status_code: int = 500

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


class AuthorizationError(CallingServiceException):
    """An access token could not be obtained for an outbound call."""

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class ExternalServiceError(CallingServiceException):
    """External service could not be reached or answered unintelligibly."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        self.service = service
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class DownstreamServiceError(ExternalServiceError):
    """External service answered with a non-success status.

    The status code, raw body, content type and relayable headers are kept so
    the failure can be returned to the original caller as-is. ``body`` holds
    the decoded JSON value when the body is JSON, otherwise its text.
    """

    def __init__(
        self,
        service: str,
        status_code: int,
        body: Any = None,
        content: bytes = b"",
        media_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.status_code = status_code
        self.body = body
        self.content = content
        self.media_type = media_type
        self.headers = headers or {}
        super().__init__(
            service,
            f"responded with status {status_code}",
            details={"status_code": status_code}
        )
