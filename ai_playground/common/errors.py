"""
Error Definitions

Defines the exceptions raised before a normalized stream starts. Each carries
the HTTP status the boundary answers with and the error kind used on the wire.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Error taxonomy shared by exceptions and in-stream Error events."""

    UNAUTHORIZED = "unauthorized"
    UNSUPPORTED_PROVIDER = "unsupported_provider"
    VALIDATION_ERROR = "validation_error"
    TRANSPORT_FAILURE = "transport_failure"
    UPSTREAM_REJECTED = "upstream_rejected"
    UPSTREAM_STREAM_ERROR = "upstream_stream_error"


class AppError(Exception):
    """
    Application Base Exception

    Base class for all custom exceptions, containing error message, kind, and HTTP status.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.TRANSPORT_FAILURE,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ):
        """
        Initialize exception

        Args:
            message: Error message
            kind: Error kind
            details: Extra error details (only exposed in debug mode)
            status_code: HTTP status code
        """
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self, include_details: bool = False) -> dict[str, Any]:
        """
        Convert to the boundary error body

        Returns:
            dict: ``{"error": message}``, plus details when requested
        """
        result: dict[str, Any] = {"error": self.message}
        if include_details and self.details:
            result["details"] = self.details
        return result


class UnauthorizedError(AppError):
    """
    Authentication Error

    Raised when the caller did not supply a bearer credential.
    """

    def __init__(
        self,
        message: str = "API key is required",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            kind=ErrorKind.UNAUTHORIZED,
            details=details,
            status_code=401,
        )


class UnsupportedProviderError(AppError):
    """Raised when the requested provider is not registered."""

    def __init__(
        self,
        provider: str,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=f"Unsupported provider: {provider}",
            kind=ErrorKind.UNSUPPORTED_PROVIDER,
            details=details,
            status_code=400,
        )


class ValidationError(AppError):
    """
    Parameter Validation Error

    Raised when the inbound chat request does not meet requirements.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            kind=ErrorKind.VALIDATION_ERROR,
            details=details,
            status_code=422,
        )


class TransportFailureError(AppError):
    """Raised on connection-level failures (DNS, TLS, timeout) before streaming."""

    def __init__(
        self,
        message: str = "Upstream transport failure",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            kind=ErrorKind.TRANSPORT_FAILURE,
            details=details,
            status_code=500,
        )


class UpstreamRejectedError(AppError):
    """
    Upstream Service Error

    Raised when the upstream provider answers with a non-2xx status. The
    upstream status is propagated to the caller unchanged.
    """

    def __init__(
        self,
        message: str = "Upstream service error",
        status_code: int = 502,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            kind=ErrorKind.UPSTREAM_REJECTED,
            details=details,
            status_code=status_code,
        )


class MalformedFrameError(Exception):
    """Raised by stream decoders when a unit cannot be parsed."""
