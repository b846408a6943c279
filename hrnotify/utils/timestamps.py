"""Timestamp utilities for UTC handling and database storage.

Delivery records store timestamps as fixed-width ISO 8601 strings so that
lexicographic ordering in SQL matches chronological ordering. This module
owns the conversion in both directions plus the window boundaries used by
the delivery statistics.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC time with timezone info

    Example:
        >>> now = utc_now()
        >>> now.tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    If the datetime is timezone-naive, it's treated as UTC.
    If the datetime has a different timezone, it's converted to UTC.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_storage(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime for database storage.

    Args:
        dt: Datetime to format (naive values are treated as UTC)

    Returns:
        Fixed-width ISO 8601 string with microseconds and 'Z' suffix, or None

    Example:
        >>> to_storage(datetime(2025, 11, 4, 12, 0, 0, tzinfo=timezone.utc))
        '2025-11-04T12:00:00.000000Z'
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return None
    return dt_utc.strftime(STORAGE_FORMAT)


def from_storage(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into an aware UTC datetime.

    Accepts values with or without microseconds.

    Args:
        value: Stored timestamp string

    Returns:
        Timezone-aware datetime in UTC, or None for empty input
    """
    if not value:
        return None

    cleaned = value.rstrip("Z")
    try:
        dt = datetime.strptime(cleaned, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(cleaned, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def start_of_utc_day(now: Optional[datetime] = None) -> datetime:
    """Return midnight UTC of the day containing ``now``."""
    current = ensure_utc(now) or utc_now()
    return current.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week_window(now: Optional[datetime] = None) -> datetime:
    """Return the start of the trailing seven-day window ending today."""
    return start_of_utc_day(now) - timedelta(days=7)
