"""
Shared error handling for the Portal client.
"""

from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    status_code: Optional[int] = None
    context: Optional[str] = None
    details: Dict[str, Any] = {}


class FieldError(BaseModel):
    """A single failing field: dotted path plus message."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


class PortalException(Exception):
    """Base exception for the Portal client."""

    code = "INTERNAL_ERROR"

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> Optional[int]:
        return self.details.get("status_code")

    def to_response(self, context: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            status_code=self.status_code,
            context=context,
            details=self.details
        )


class ContractValidationError(PortalException):
    """Request data or url parameters rejected by the endpoint contract."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Request validation error", errors: Optional[List[FieldError]] = None):
        self.errors = list(errors or [])
        super().__init__(
            self.code,
            message,
            {"errors": [error.model_dump() for error in self.errors]}
        )


class AuthenticationError(PortalException):
    """Authentication required but no token is available."""

    code = "AUTH_ERROR"

    def __init__(self, message: str = "Authentication required but no token available", details: Optional[Dict[str, Any]] = None):
        super().__init__(self.code, message, details)


class HttpError(PortalException):
    """Transport failure, non-2xx status or an envelope reporting failure."""

    code = "HTTP_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(self.code, message, details)


class ResponseValidationError(PortalException):
    """Server reported success but the payload fails the response schema."""

    code = "RESPONSE_VALIDATION_ERROR"

    def __init__(self, message: str = "Response validation error", errors: Optional[List[FieldError]] = None):
        self.errors = list(errors or [])
        super().__init__(
            self.code,
            message,
            {"errors": [error.model_dump() for error in self.errors]}
        )


class UnknownError(PortalException):
    """Any failure not matching the other error classes."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Unknown error", details: Optional[Dict[str, Any]] = None):
        super().__init__(self.code, message, details)


class MutationError(PortalException):
    """Raised to mutation callers; keeps the normalized cause and its code."""

    def __init__(self, method: str, path: str, cause: PortalException):
        self.method = method
        self.path = path
        self.cause = cause
        super().__init__(
            cause.code,
            f"{method} /{path}: {cause.message}",
            dict(cause.details)
        )


class FormValidationError(PortalException):
    """Field-level errors raised by a form before any network call."""

    code = "FORM_VALIDATION_ERROR"

    def __init__(self, errors: List[FieldError]):
        self.errors = list(errors)
        message = ", ".join(str(error) for error in self.errors) or "Form validation failed"
        super().__init__(
            self.code,
            message,
            {"errors": [error.model_dump() for error in self.errors]}
        )

    def field_errors(self) -> Dict[str, str]:
        """Map of field path to its first error message."""
        result: Dict[str, str] = {}
        for error in self.errors:
            result.setdefault(error.path, error.message)
        return result


def normalize_error(error: BaseException) -> PortalException:
    """Map any exception onto the client's error taxonomy."""
    if isinstance(error, PortalException):
        return error
    if isinstance(error, httpx.HTTPError):
        return HttpError(f"API request failed: {error}")
    message = str(error) or error.__class__.__name__
    return UnknownError(message, details={"exception": error.__class__.__name__})
