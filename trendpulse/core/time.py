"""Time and timezone utilities for recency windows."""

from datetime import datetime, timezone, timedelta
from typing import Optional


def utc_now() -> datetime:
    """Get current time in UTC."""
    return datetime.now(timezone.utc)


def normalize_timezone(dt: datetime, target_tz: timezone = timezone.utc) -> datetime:
    """
    Normalize datetime to target timezone.

    Naive datetimes are assumed to be UTC, which is how the database
    driver hands back timestamps on backends without timezone support.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(target_tz)


def hours_ago(hours: float, now: Optional[datetime] = None) -> datetime:
    """Return the instant `hours` before `now` (defaults to current UTC time)."""
    now = now or utc_now()
    return now - timedelta(hours=hours)


def elapsed_hours(start: datetime, end: datetime) -> float:
    """Signed wall-clock hours from start to end."""
    delta = normalize_timezone(end) - normalize_timezone(start)
    return delta.total_seconds() / 3600


def is_recent(dt: Optional[datetime], hours: float, now: Optional[datetime] = None) -> bool:
    """Check if datetime falls strictly inside the trailing `hours` window."""
    if dt is None:
        return False
    return normalize_timezone(dt) > hours_ago(hours, now)
