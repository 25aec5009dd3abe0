"""
Shared error handling for the Portfolio Edge layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class PortfolioException(Exception):
    """Base exception for Portfolio Edge components."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(PortfolioException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class StorageError(PortfolioException):
    """Durable storage read/write failure (quota, disabled storage, I/O)."""

    status_code = 500

    def __init__(self, message: str = "Storage error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORAGE_ERROR", message, details)


class FetchError(PortfolioException):
    """Base class for failures fetching data from an upstream JSON endpoint."""

    status_code = 502

    def __init__(
        self,
        code: str,
        url: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.url = url
        merged = {"url": url}
        merged.update(details or {})
        super().__init__(code, message, merged)


class NetworkError(FetchError):
    """The request was rejected before a response arrived, or timed out."""

    def __init__(self, url: str, message: str = "Network error", details: Optional[Dict[str, Any]] = None):
        super().__init__("NETWORK_ERROR", url, message, details)


class HttpError(FetchError):
    """The upstream answered with a non-2xx status."""

    def __init__(self, url: str, status_code: int, reason: str = "", details: Optional[Dict[str, Any]] = None):
        self.upstream_status = status_code
        merged = {"status_code": status_code}
        merged.update(details or {})
        super().__init__("HTTP_ERROR", url, f"HTTP {status_code}: {reason}".rstrip(": "), merged)


class ParseError(FetchError):
    """The upstream body was not valid JSON."""

    def __init__(self, url: str, message: str = "Invalid JSON response", details: Optional[Dict[str, Any]] = None):
        super().__init__("PARSE_ERROR", url, message, details)
