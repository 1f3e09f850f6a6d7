"""
Custom exceptions for TenantLog.

Provides structured error handling with appropriate HTTP status codes.
The ``reason`` of a client error is returned verbatim to the caller as
``{"error": reason}``.
"""

from typing import Any, Dict, Optional


class TenantLogException(Exception):
    """Base exception for TenantLog."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}

    @property
    def reason(self) -> str:
        """Caller-facing reason string."""
        if self.status_code >= 500:
            return "Internal server error"
        return str(self)


class ConfigurationError(TenantLogException):
    """Raised when required startup configuration is missing or invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="configuration_error",
            details=details,
        )


class ValidationError(TenantLogException):
    """Raised when an ingest request is rejected."""

    def __init__(
        self,
        message: str,
        error_code: str = "validation_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code=error_code,
            details=details,
        )


class UnsupportedContentTypeError(ValidationError):
    """Content-Type is neither JSON nor plain text."""

    def __init__(self, content_type: str = "") -> None:
        super().__init__(
            "Unsupported Content-Type",
            error_code="unsupported_content_type",
            details={"content_type": content_type},
        )


class InvalidJSONError(ValidationError):
    """JSON body does not decode to an object."""

    def __init__(self, cause: str = "") -> None:
        super().__init__(
            "Invalid JSON",
            error_code="invalid_json",
            details={"cause": cause} if cause else None,
        )


class MissingTenantError(ValidationError):
    """No usable tenant_id after normalization."""

    def __init__(self) -> None:
        super().__init__("Missing tenant_id", error_code="missing_tenant_id")


class MissingTextError(ValidationError):
    """No usable log text after normalization."""

    def __init__(self) -> None:
        super().__init__("Missing text content", error_code="missing_text")


class QueueError(TenantLogException):
    """Raised by queue clients when the backend rejects or cannot be reached."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="queue_error",
            details=details,
        )


class EnqueueError(TenantLogException):
    """Raised when an accepted event could not be handed to the queue."""

    def __init__(self, message: str = "Failed to enqueue message", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="enqueue_error",
            details=details,
        )


class DeserializationError(TenantLogException):
    """Raised when a queue payload is not a valid event."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="deserialization_error",
            details=details,
        )


class StoreWriteError(TenantLogException):
    """Raised when a processed record could not be persisted."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="store_write_error",
            details=details,
        )
