"""Shared constants and helpers."""

from .geo import haversine_km
from .time_utils import (
    utc_now,
    ensure_utc,
    parse_timestamp,
    start_of_day,
    minutes_between,
    hours_between,
    days_ago,
)

__all__ = [
    'haversine_km',
    'utc_now',
    'ensure_utc',
    'parse_timestamp',
    'start_of_day',
    'minutes_between',
    'hours_between',
    'days_ago',
]
