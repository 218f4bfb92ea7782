"""Custom exceptions for the session gateway"""

from typing import Any


class AppException(Exception):
    """Base exception for application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class FormatError(AppException):
    """Malformed session reference supplied by the operator."""

    def __init__(self, message: str = "Invalid session ID format"):
        super().__init__(message=message, status_code=400)


class VerificationRequiredError(AppException):
    def __init__(self, channel_link: str):
        super().__init__(
            message="Please verify by visiting our channel first",
            status_code=403,
            details={"channelLink": channel_link},
        )


class DownloadError(AppException):
    """Credential blob could not be fetched or decrypted. Retryable."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=f"Session download failed: {message}", status_code=500, details=details)


class GatewayConnectionError(AppException):
    """Transport-level failure talking to the protocol sidecar.

    Handled by the reconnect machinery, never rendered to HTTP callers.
    """

    def __init__(self, tenant_id: str, message: str):
        self.tenant_id = tenant_id
        super().__init__(
            message=f"Connection error for tenant {tenant_id}: {message}",
            status_code=503,
            details={"tenant": tenant_id},
        )


class UpstreamAPIError(AppException):
    def __init__(self, service: str, message: str):
        super().__init__(
            message=f"{service} error: {message}",
            status_code=502,
            details={"service": service},
        )
