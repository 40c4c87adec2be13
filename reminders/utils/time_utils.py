"""Time utilities for reminder scheduling."""
from datetime import datetime, timezone
import pytz


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_local(dt: datetime, timezone_str: str | None = None) -> datetime:
    """Convert a UTC datetime to the given timezone (UTC if unknown)."""
    try:
        tz = pytz.timezone(timezone_str or "UTC")
    except pytz.UnknownTimeZoneError:
        tz = pytz.utc
    return to_utc_aware(dt).astimezone(tz)


def format_date(dt: datetime) -> str:
    """Format date like 'Monday, October 19, 2026'."""
    return f"{dt.strftime('%A, %B')} {dt.day}, {dt.year}"


def format_time(dt: datetime) -> str:
    """Format time like '9:05 AM'."""
    return dt.strftime("%I:%M %p").lstrip("0")
