"""
Working-hours window - a shop's open/close instants for one calendar date.
Handles shops that close after midnight.
"""
from datetime import date, datetime, time, timedelta
from typing import NamedTuple
from zoneinfo import ZoneInfo

from waitwise.errors import InvalidConfiguration


class BusinessWindow(NamedTuple):
    open: datetime
    close: datetime


def parse_hhmm(value: str) -> time:
    """Parse an "HH:MM" (or "HH:MM:SS") string to a time object."""
    if not isinstance(value, str):
        raise InvalidConfiguration(f"Shop hours must be HH:MM strings, got {value!r}")
    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise InvalidConfiguration(f"Malformed shop hours: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise InvalidConfiguration(f"Shop hours out of range: {value!r}")
    return time(hour, minute)


def window_for(
    opening_time: str,
    closing_time: str,
    target_date: date,
    tz: ZoneInfo,
) -> BusinessWindow:
    """
    Compute the open/close instants of a shop on target_date in tz.
    A closing time at or before the opening time rolls over to the next day,
    e.g. 22:00-06:00 on D gives D 22:00 to D+1 06:00.
    """
    open_at = datetime.combine(target_date, parse_hhmm(opening_time), tzinfo=tz)
    close_at = datetime.combine(target_date, parse_hhmm(closing_time), tzinfo=tz)
    if close_at <= open_at:
        close_at = datetime.combine(
            target_date + timedelta(days=1), parse_hhmm(closing_time), tzinfo=tz
        )
    return BusinessWindow(open_at, close_at)
