"""Utility functions for time handling."""

from .timestamps import (
    ensure_utc,
    from_storage,
    start_of_utc_day,
    start_of_week_window,
    to_storage,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "to_storage",
    "from_storage",
    "start_of_utc_day",
    "start_of_week_window",
]
