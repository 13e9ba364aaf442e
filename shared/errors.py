"""
Shared error handling for the Tokenization Gateway.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

VALIDATION_ERROR_MESSAGE = "Data Validation error"


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    error: Optional[str] = None
    details: Dict[str, Any] = {}


class GatewayException(Exception):
    """Base exception for gateway errors."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 error: Optional[str] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        self.error = error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            error=self.error,
            details=self.details
        )


class ValidationError(GatewayException):
    """Malformed or missing input fields."""

    def __init__(self, message: str = VALIDATION_ERROR_MESSAGE, errors: Optional[list] = None):
        super().__init__("VALIDATION_ERROR", message, {"errors": list(errors or [])})
        self.errors = list(errors or [])


class PreconditionError(GatewayException):
    """Raised when a route needs state the gateway does not have yet."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("PRECONDITION_FAILED", message, details)


class NotFoundError(GatewayException):
    """Requested entity is unknown upstream."""

    status_code = 404

    def __init__(self, message: str = "Not found.", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ExternalServiceError(GatewayException):
    """Registry or driver call failed (transport error or non-2xx status)."""

    def __init__(self, service: str, message: str = "External service error",
                 details: Optional[Dict[str, Any]] = None, status_code: Optional[int] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
        self.service = service
        self.reason = message
        self.upstream_status = status_code


class UploadValidationError(GatewayException):
    """Uploaded content could not be unpacked or is not a detokenization bundle."""

    def __init__(self, message: str, error: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("UPLOAD_VALIDATION_ERROR", message, details, error=error)
