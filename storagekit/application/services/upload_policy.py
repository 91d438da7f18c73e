"""Upload policy: file size, quota and content type checks applied before a backend upload."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace

from storagekit.core.config import StorageConfig, get_storage_config
from storagekit.domain.exceptions import InvalidFileTypeError, QuotaExceededError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageLimits:
    """Effective limits for one caller (bytes). None means inherit."""

    max_file_size_bytes: int | None = None
    quota_bytes: int | None = None

    @classmethod
    def from_config(cls, config: StorageConfig | None = None) -> "StorageLimits":
        config = config if config is not None else get_storage_config()
        return cls(
            max_file_size_bytes=config.max_file_size_bytes,
            quota_bytes=config.quota_bytes,
        )

    def merged_with(self, override: "StorageLimits | None") -> "StorageLimits":
        """Return self with the non-None fields of override applied."""
        if override is None:
            return self
        return replace(
            self,
            max_file_size_bytes=(
                override.max_file_size_bytes
                if override.max_file_size_bytes is not None
                else self.max_file_size_bytes
            ),
            quota_bytes=(
                override.quota_bytes if override.quota_bytes is not None else self.quota_bytes
            ),
        )


def resolve_storage_limits(
    defaults: StorageLimits,
    role: str | None = None,
    role_limits: Mapping[str, StorageLimits] | None = None,
    user_override: StorageLimits | None = None,
) -> StorageLimits:
    """Resolve limits with precedence user override > role > defaults.

    Args:
        defaults: Global limits (usually StorageLimits.from_config()).
        role: Caller's role name, if any.
        role_limits: Per-role limits keyed by role name.
        user_override: Per-user limits.
    """
    limits = defaults
    if role is not None and role_limits:
        limits = limits.merged_with(role_limits.get(role))
    return limits.merged_with(user_override)


def _normalize_mime(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def check_content_type(content_type: str, allowed_types: Iterable[str]) -> None:
    """Raise InvalidFileTypeError unless content_type matches an allowed pattern.

    Patterns may be exact ("image/png"), a subtype wildcard ("image/*") or
    "*/*". MIME parameters such as charset are ignored.
    """
    allowed = list(allowed_types)
    mime = _normalize_mime(content_type)
    if "/" in mime:
        main_type = mime.split("/", 1)[0]
        for pattern in allowed:
            pattern = _normalize_mime(pattern)
            if pattern in ("*/*", mime) or pattern == f"{main_type}/*":
                return
    raise InvalidFileTypeError(content_type, allowed)


def enforce_upload_policy(
    size_bytes: int,
    content_type: str,
    current_usage_bytes: int = 0,
    limits: StorageLimits | None = None,
    allowed_types: Iterable[str] | None = None,
) -> None:
    """Validate an upload against limits and allowed content types.

    Args:
        size_bytes: Size of the upload.
        content_type: Declared MIME type.
        current_usage_bytes: Bytes the caller already stores.
        limits: Effective limits; defaults to the configured ones.
        allowed_types: Allowed MIME patterns; None allows any type.

    Raises:
        ValueError: Negative sizes.
        QuotaExceededError: File too large, or quota would be exceeded.
        InvalidFileTypeError: Content type not allowed.
    """
    if size_bytes < 0 or current_usage_bytes < 0:
        raise ValueError("size_bytes and current_usage_bytes must be non-negative")
    limits = limits if limits is not None else StorageLimits.from_config()

    if allowed_types is not None:
        check_content_type(content_type, allowed_types)

    max_size = limits.max_file_size_bytes
    if max_size is not None and size_bytes > max_size:
        logger.info("Upload rejected: %d bytes exceeds file size limit %d", size_bytes, max_size)
        raise QuotaExceededError(
            f"File size {size_bytes} bytes exceeds maximum of {max_size} bytes",
            quota_limit=max_size,
            requested_size=size_bytes,
        )

    quota = limits.quota_bytes
    if quota is not None and current_usage_bytes + size_bytes > quota:
        logger.info(
            "Upload rejected: usage %d + %d bytes exceeds quota %d",
            current_usage_bytes,
            size_bytes,
            quota,
        )
        raise QuotaExceededError(
            current_usage=current_usage_bytes,
            quota_limit=quota,
            requested_size=size_bytes,
        )
