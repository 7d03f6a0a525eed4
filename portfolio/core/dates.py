"""
Calendar-date helpers for the Daily Tracker.

Dates travel between client and server as ``YYYY-MM-DD`` strings and mean a
calendar day in the user's local timezone. The database stores them as the
UTC midnight of that calendar day, so converting back with
``utc_date_to_local`` yields the same day no matter where the server runs.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple, Union


def get_local_today() -> date:
    """Today's calendar date in the local timezone."""
    return datetime.now().date()


def get_local_date_string(value: Union[date, datetime]) -> str:
    """Format a date (or the local calendar day of a datetime) as YYYY-MM-DD."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        value = value.date()
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def parse_local_date(date_string: str) -> date:
    """Parse YYYY-MM-DD as a local calendar date (never shifted through UTC).

    A trailing time component (``2025-03-01T00:00:00Z``) is ignored so that
    clients sending full ISO timestamps still land on the day they meant.
    """
    head = date_string.strip().split("T")[0]
    try:
        year, month, day = (int(part) for part in head.split("-"))
    except ValueError:
        raise ValueError(f"Invalid date string: {date_string!r}")
    return date(year, month, day)


def normalize_to_local_midnight(value: datetime) -> datetime:
    """Drop the time of day, keeping the local calendar day."""
    if value.tzinfo is not None:
        value = value.astimezone()
    return datetime(value.year, value.month, value.day)


def local_date_to_utc(local_date: Union[date, datetime]) -> datetime:
    """UTC midnight of the same calendar date, for storage."""
    if isinstance(local_date, datetime):
        local_date = normalize_to_local_midnight(local_date).date()
    return datetime.combine(local_date, time.min, tzinfo=timezone.utc)


def utc_date_to_local(utc_value: Union[datetime, str]) -> date:
    """Calendar date encoded by a stored UTC timestamp."""
    if isinstance(utc_value, str):
        utc_value = datetime.fromisoformat(utc_value.replace("Z", "+00:00"))
    if utc_value.tzinfo is not None:
        utc_value = utc_value.astimezone(timezone.utc)
    return utc_value.date()


def is_same_local_day(first: Union[date, datetime], second: Union[date, datetime]) -> bool:
    return get_local_date_string(first) == get_local_date_string(second)


def get_local_month_range(value: Union[date, datetime]) -> Tuple[datetime, datetime]:
    """First instant and last microsecond of the month containing ``value``."""
    start = datetime(value.year, value.month, 1)
    if value.month == 12:
        next_month = datetime(value.year + 1, 1, 1)
    else:
        next_month = datetime(value.year, value.month + 1, 1)
    return start, next_month - timedelta(microseconds=1)


def coerce_local_date(value: Optional[Union[date, datetime, str]]) -> date:
    """Accept what API clients send for a calendar day; None means today."""
    if value is None:
        return get_local_today()
    if isinstance(value, datetime):
        return normalize_to_local_midnight(value).date()
    if isinstance(value, date):
        return value
    return parse_local_date(value)
