"""Application services."""

from storagekit.application.services.upload_policy import (
    StorageLimits,
    check_content_type,
    enforce_upload_policy,
    resolve_storage_limits,
)

__all__ = [
    "StorageLimits",
    "check_content_type",
    "enforce_upload_policy",
    "resolve_storage_limits",
]
