"""Custom exceptions for the application."""

from typing import Any, Dict, Optional


class BaseServiceException(Exception):
    """Base exception for all service-related errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class SpoolStorageError(BaseServiceException):
    """Raised when the temporary spool file cannot be created."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(
            message=f"tmp file: {message}",
            error_code="SPOOL_STORAGE_ERROR",
        )


class InvalidUploadError(BaseServiceException):
    """Raised when the request body cannot be read or saved locally."""

    status_code = 400

    def __init__(self, message: str, error_code: str = "INVALID_UPLOAD") -> None:
        super().__init__(message=f"save: {message}", error_code=error_code)


class PayloadTooLargeError(InvalidUploadError):
    """Raised when the request body exceeds the configured bound."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"request body exceeds maximum size of {limit} bytes",
            error_code="PAYLOAD_TOO_LARGE",
        )
        self.details = {"limit": limit}


class ExternalServiceError(BaseServiceException):
    """Raised when an external service call fails."""

    status_code = 502

    def __init__(self, service: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(
            message=f"{service}: {message}",
            error_code="EXTERNAL_SERVICE_ERROR",
            details={"service": service, "status_code": status_code},
        )


class ObjectStoreError(ExternalServiceError):
    """Raised when pushing an object to the store fails."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(service="s3", message=message)
        self.details["code"] = code


class UploadTimeoutError(ObjectStoreError):
    """Raised when the push does not finish within the configured ceiling."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"upload did not complete within {timeout:g}s", code="Timeout")


class UploadCancelledError(ObjectStoreError):
    """Raised when the caller disconnects while the push is in flight."""

    def __init__(self) -> None:
        super().__init__("upload aborted: client disconnected", code="Cancelled")
