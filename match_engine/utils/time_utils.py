"""
Time helpers for timestamps flowing through the engine.

All engine timestamps are timezone-aware UTC. Stores and API payloads may
hand back naive datetimes or ISO strings, which are normalized here.
"""

from datetime import datetime, timedelta, timezone
from typing import Union


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive datetimes are assumed to already be UTC (psycopg2 returns
    naive values for TIMESTAMP columns).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """
    Parse an ISO-8601 string (or pass through a datetime) as aware UTC.

    Raises:
        ValueError: If the string is empty or not ISO-8601

    Examples:
        >>> parse_timestamp("2024-09-15T13:00:00+00:00")
        datetime.datetime(2024, 9, 15, 13, 0, tzinfo=datetime.timezone.utc)
    """
    if isinstance(value, datetime):
        return ensure_utc(value)

    value = value.strip()
    if not value:
        raise ValueError("Timestamp string cannot be empty")

    # fromisoformat only learned the "Z" suffix in 3.11
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'

    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError:
        raise ValueError(f"Could not parse timestamp '{value}'")


def start_of_day(dt: datetime) -> datetime:
    """Midnight UTC of the calendar day containing dt."""
    dt = ensure_utc(dt)
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def minutes_between(start: datetime, end: datetime) -> float:
    """Elapsed minutes from start to end (negative if end is earlier)."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 60.0


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours from start to end (negative if end is earlier)."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600.0


def days_ago(now: datetime, days: float) -> datetime:
    """The instant `days` days before now."""
    return ensure_utc(now) - timedelta(days=days)
