"""
Custom exceptions for the NFT Gallery Gateway.
Provides structured error handling and the uniform error envelope.
"""

from typing import Any, Dict, Optional

from fastapi import status


class GatewayException(Exception):
    """Base exception for the gateway."""

    title = "Internal Server Error"

    def __init__(
        self,
        message: str,
        error_code: str = "GATEWAY_ERROR",
        details: Optional[Any] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

    def to_envelope(self) -> Dict[str, Any]:
        """Render the `{error, message, details?}` envelope."""
        envelope: Dict[str, Any] = {"error": self.title, "message": self.message}
        if self.details:
            envelope["details"] = self.details
        return envelope


# Client errors
class BadRequestError(GatewayException):
    """Raised when a client parameter is missing or malformed."""

    title = "Bad Request"

    def __init__(self, message: str = "Invalid request", details: Optional[Any] = None):
        super().__init__(message, "BAD_REQUEST", details)


class InvalidAddressError(BadRequestError):
    """Raised when an address is not 0x followed by 40 hex digits."""

    title = "Invalid Address"

    def __init__(self, value: Any, details: Optional[Any] = None):
        super().__init__(f"Invalid address: {value}", details)
        self.error_code = "INVALID_ADDRESS"


class UnauthorizedError(GatewayException):
    """Raised when a required credential header is missing."""

    title = "Unauthorized"

    def __init__(self, message: str = "Authorization header is required", details: Optional[Any] = None):
        super().__init__(message, "UNAUTHORIZED", details)


class ForbiddenError(GatewayException):
    """Raised when the caller does not own the resource."""

    title = "Access Denied"

    def __init__(self, message: str = "Access denied", details: Optional[Any] = None):
        super().__init__(message, "FORBIDDEN", details)


class NotFoundError(GatewayException):
    """Raised when a resource does not exist."""

    title = "Not Found"

    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, "NOT_FOUND", details)


class ProfileNotFoundError(NotFoundError):
    """Raised when a social identity cannot be resolved by any source."""

    title = "Profile Not Found"

    def __init__(self, identifier: str, details: Optional[Any] = None):
        super().__init__(f"No Farcaster profile found for {identifier}", details)
        self.error_code = "PROFILE_NOT_FOUND"


class FolderNotFoundError(NotFoundError):
    """Raised when a folder id is unknown."""

    title = "Folder Not Found"

    def __init__(self, folder_id: str, details: Optional[Any] = None):
        super().__init__(f"Folder not found: {folder_id}", details)
        self.error_code = "FOLDER_NOT_FOUND"


class MethodNotAllowedError(GatewayException):
    """Raised when the verb does not match the handler."""

    title = "Method Not Allowed"

    def __init__(self, method: str, details: Optional[Any] = None):
        super().__init__(f"Method {method} not allowed", "METHOD_NOT_ALLOWED", details)


# Upstream errors
class UpstreamError(GatewayException):
    """Base class for failures of an outbound call."""

    title = "Upstream Error"

    def __init__(
        self,
        message: str,
        error_code: str,
        provider: Optional[str] = None,
        details: Optional[Any] = None
    ):
        super().__init__(message, error_code, details)
        self.provider = provider


class UpstreamTimeoutError(UpstreamError):
    """Raised when an upstream does not answer within its timeout."""

    title = "Upstream Timeout"

    def __init__(self, provider: Optional[str] = None, message: str = "Upstream request timed out", details: Optional[Any] = None):
        super().__init__(message, "UPSTREAM_TIMEOUT", provider, details)


class UpstreamUnavailableError(UpstreamError):
    """Raised on transport failures (connection refused, DNS, reset)."""

    title = "Upstream Unavailable"

    def __init__(self, provider: Optional[str] = None, message: str = "Upstream service unavailable", details: Optional[Any] = None):
        super().__init__(message, "UPSTREAM_UNAVAILABLE", provider, details)


class UpstreamHTTPError(UpstreamError):
    """Raised when an upstream answers with a non-success status."""

    title = "Upstream Error"

    def __init__(self, status_code: int, body: Any = None, provider: Optional[str] = None):
        message = f"Upstream responded with HTTP {status_code}"
        super().__init__(message, "UPSTREAM_HTTP_ERROR", provider, body)
        self.status_code = status_code
        self.body = body


class UpstreamProtocolError(UpstreamError):
    """Raised when an upstream response cannot be decoded."""

    title = "Upstream Protocol Error"

    def __init__(self, message: str = "Unexpected upstream response", provider: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message, "UPSTREAM_PROTOCOL", provider, details)


class UpstreamNotFoundError(UpstreamError):
    """Raised when an upstream reports that the target does not exist."""

    title = "Not Found"

    def __init__(self, message: str = "Upstream resource not found", provider: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message, "UPSTREAM_NOT_FOUND", provider, details)


class UpstreamClientError(UpstreamError):
    """Raised when a GraphQL upstream rejects the query itself."""

    title = "GraphQL Error"

    def __init__(self, message: str, provider: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message, "UPSTREAM_CLIENT_ERROR", provider, details)


# Server errors
class ConfigurationError(GatewayException):
    """Raised when a required setting (usually an API key) is missing."""

    title = "API Configuration Error"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class InternalError(GatewayException):
    """Raised for bugs and unexpected states."""

    title = "Internal Server Error"

    def __init__(self, message: str = "An unexpected error occurred", details: Optional[Any] = None):
        super().__init__(message, "INTERNAL_ERROR", details)


def get_exception_status_code(exc: GatewayException) -> int:
    """
    Get the appropriate HTTP status code for a GatewayException.

    Args:
        exc: GatewayException instance

    Returns:
        int: HTTP status code
    """
    status_mapping = {
        # Client errors
        "BAD_REQUEST": status.HTTP_400_BAD_REQUEST,
        "INVALID_ADDRESS": status.HTTP_400_BAD_REQUEST,
        "UNAUTHORIZED": status.HTTP_401_UNAUTHORIZED,
        "FORBIDDEN": status.HTTP_403_FORBIDDEN,
        "NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "PROFILE_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "FOLDER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "METHOD_NOT_ALLOWED": status.HTTP_405_METHOD_NOT_ALLOWED,

        # Upstream
        "UPSTREAM_TIMEOUT": status.HTTP_504_GATEWAY_TIMEOUT,
        "UPSTREAM_UNAVAILABLE": status.HTTP_502_BAD_GATEWAY,
        "UPSTREAM_HTTP_ERROR": status.HTTP_502_BAD_GATEWAY,
        "UPSTREAM_PROTOCOL": status.HTTP_502_BAD_GATEWAY,
        "UPSTREAM_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "UPSTREAM_CLIENT_ERROR": status.HTTP_400_BAD_REQUEST,

        # Server
        "CONFIGURATION_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }

    return status_mapping.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
