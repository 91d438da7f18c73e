"""Shared utilities."""

from storagekit.shared.utils.datetime import expires_after, utc_now

__all__ = ["expires_after", "utc_now"]
