"""
Time helpers shared by the calculators and repositories.

All instants handled by the engine are timezone-aware UTC datetimes. SQLite
drops tzinfo on the way back from the database, so anything read from a
column goes through ``ensure_utc`` before being compared.
"""

from datetime import date, datetime, time, timezone
from typing import Optional

import pytz


def utc_now() -> datetime:
    """Return the current timezone-aware UTC instant."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def combine_utc(day: date, at: time) -> datetime:
    """Build a UTC instant from a stored date + wall time (stored in UTC)."""
    return datetime.combine(day, at).replace(tzinfo=timezone.utc)


def local_date(instant: datetime, tz_name: Optional[str]) -> date:
    """
    Get the calendar date of an instant in the given timezone.

    Args:
        instant: Any datetime (naive treated as UTC)
        tz_name: IANA timezone name, falls back to UTC
    """
    tz = pytz.timezone(tz_name or "UTC")
    return ensure_utc(instant).astimezone(tz).date()
