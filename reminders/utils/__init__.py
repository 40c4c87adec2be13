"""Utilities package."""
from reminders.utils.time_utils import (
    utc_now,
    to_utc_aware,
    to_local,
    format_date,
    format_time,
)

__all__ = [
    "utc_now",
    "to_utc_aware",
    "to_local",
    "format_date",
    "format_time",
]
