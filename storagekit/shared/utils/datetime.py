"""
UTC datetime utilities for consistent timezone handling.

All datetime values produced by storage backends (signed URL expiry,
upload timestamps) are timezone-aware UTC.
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """
    Return the current UTC datetime with timezone info.

    Use this instead of:
        - datetime.now() - naive, uses local timezone
        - datetime.utcnow() - naive, deprecated in Python 3.12

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(UTC)


def expires_after(seconds: int) -> datetime:
    """
    Return the absolute UTC instant that lies `seconds` from now.

    Args:
        seconds: Lifetime in seconds

    Returns:
        Timezone-aware datetime in UTC
    """
    return utc_now() + timedelta(seconds=seconds)
