"""Storage exceptions.

Every failure raised by a storage backend, the backend registry, or the
configuration layer is one of the classes below. Each carries a stable
machine-readable code, an HTTP-style status code, and structured details.
The presentation layer serializes them with to_dict() and maps status_code
to the HTTP response code.
"""

from enum import Enum
from typing import Any


class StorageErrorCode(str, Enum):
    """Machine-readable codes for storage failures."""

    STORAGE_ERROR = "STORAGE_ERROR"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    BACKEND_NOT_REGISTERED = "BACKEND_NOT_REGISTERED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class StorageKitException(Exception):
    """Base exception for all storage errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code (see StorageErrorCode).
        status_code: HTTP-style status code for the presentation layer.
        details: Additional error context (e.g. key, backend, issues).
    """

    default_code: StorageErrorCode = StorageErrorCode.STORAGE_ERROR
    default_status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            code: Optional machine-readable code; defaults to the class default.
            status_code: Optional status code; defaults to the class default.
            details: Optional dict of extra context.
        """
        self.message = message
        self.code = str(code or self.default_code.value)
        self.status_code = status_code or self.default_status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return a plain record safe to send across process boundaries."""
        return {
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "details": dict(self.details),
        }


class StorageError(StorageKitException):
    """Unclassified backend failure (network, auth, unknown SDK error)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, StorageErrorCode.STORAGE_ERROR.value, 500, details)


class QuotaExceededError(StorageKitException):
    """Raised when an upload would exceed the configured size or quota limits."""

    default_code = StorageErrorCode.QUOTA_EXCEEDED
    default_status_code = 403

    def __init__(
        self,
        message: str = "Storage quota exceeded",
        current_usage: int | None = None,
        quota_limit: int | None = None,
        requested_size: int | None = None,
    ) -> None:
        """Initialize with optional usage figures (bytes).

        Args:
            message: Human-readable description.
            current_usage: Bytes already stored by the caller.
            quota_limit: Limit that would be exceeded.
            requested_size: Size of the rejected upload.
        """
        details: dict[str, Any] = {}
        if current_usage is not None:
            details["current_usage"] = current_usage
        if quota_limit is not None:
            details["quota_limit"] = quota_limit
        if requested_size is not None:
            details["requested_size"] = requested_size
        super().__init__(message, details=details)


class StorageFileNotFoundError(StorageKitException):
    """Raised when a key does not exist in the backend."""

    default_code = StorageErrorCode.FILE_NOT_FOUND
    default_status_code = 404

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"File not found in storage: {key}", details={"key": key})


class InvalidFileTypeError(StorageKitException):
    """Raised when a content type is not in the allowed set."""

    default_code = StorageErrorCode.INVALID_FILE_TYPE
    default_status_code = 400

    def __init__(
        self, provided_type: str, allowed_types: list[str] | None = None
    ) -> None:
        if allowed_types:
            message = (
                f"Invalid file type: {provided_type}. "
                f"Allowed types: {', '.join(allowed_types)}"
            )
        else:
            message = f"Invalid file type: {provided_type}"
        super().__init__(
            message,
            details={"provided_type": provided_type, "allowed_types": allowed_types},
        )


class ConfigurationError(StorageKitException):
    """Raised when storage configuration fails validation."""

    default_code = StorageErrorCode.CONFIGURATION_ERROR
    default_status_code = 500

    def __init__(
        self,
        message: str,
        issues: list[dict[str, str]] | None = None,
        backend: str | None = None,
    ) -> None:
        """Initialize with message and optional validation issues.

        Args:
            message: Description of the configuration failure.
            issues: List of {"field": ..., "message": ...} entries.
            backend: Backend identifier the configuration applies to.
        """
        details: dict[str, Any] = {}
        if issues is not None:
            details["issues"] = issues
        if backend is not None:
            details["backend"] = backend
        super().__init__(message, details=details)


class BackendNotRegisteredError(ConfigurationError):
    """Raised when resolving a backend identifier nobody registered."""

    default_code = StorageErrorCode.BACKEND_NOT_REGISTERED

    def __init__(self, identifier: str, available_backends: list[str]) -> None:
        if available_backends:
            message = (
                f'Storage backend not registered: "{identifier}". '
                f"Available backends: {', '.join(available_backends)}"
            )
        else:
            message = (
                f'Storage backend not registered: "{identifier}". '
                "No backends are currently registered."
            )
        super().__init__(message)
        self.details = {
            "requested_backend": identifier,
            "available_backends": list(available_backends),
        }
