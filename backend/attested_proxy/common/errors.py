"""
Error Definitions

Defines custom exception classes used by the proxy for unified error handling.
"""

from http import HTTPStatus
from typing import Any


class AppError(Exception):
    """
    Application Base Exception

    Base class for all custom exceptions, containing error message, code and HTTP status.
    """

    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
    ):
        """
        Initialize exception

        Args:
            message: Error message (surfaced to the client as `details`)
            code: Error code
            status_code: HTTP status code
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary format (for API response)

        Returns:
            dict: `{"error": <reason phrase>, "details": <message>}`
        """
        return error_body(self.message, self.status_code)


class VerificationError(AppError):
    """
    Verification Error

    Raised when the remote environment could not be verified, either because no
    verification document was obtained or because it reports a failed check.
    """

    def __init__(
        self,
        message: str = "Verification failed",
        code: str = "verification_failed",
    ):
        super().__init__(message=message, code=code, status_code=500)


class UpstreamError(AppError):
    """
    Upstream Transport Error

    Raised when the upstream could not be reached or read (network, TLS, timeout).
    """

    def __init__(
        self,
        message: str = "Upstream service error",
        code: str = "upstream_error",
    ):
        super().__init__(message=message, code=code, status_code=500)


class TranslationError(AppError):
    """
    Request Translation Error

    Raised when an inbound request cannot be turned into an outbound request.
    """

    def __init__(
        self,
        message: str = "Malformed request",
        code: str = "translation_error",
    ):
        super().__init__(message=message, code=code, status_code=500)


class ServiceError(AppError):
    """
    Service Error

    Raised when the proxy is asked to serve before startup finished.
    """

    def __init__(
        self,
        message: str = "Service unavailable",
        code: str = "service_unavailable",
    ):
        super().__init__(message=message, code=code, status_code=503)


def error_body(details: str, status_code: int = 500) -> dict[str, Any]:
    """Uniform client-visible error payload."""
    return {
        "error": HTTPStatus(status_code).phrase,
        "details": details,
    }
