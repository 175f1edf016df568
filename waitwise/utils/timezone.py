"""
Timezone utilities for scheduling.
All wall-clock arithmetic happens in the configured business timezone,
never in the host's local time.
"""
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from waitwise.errors import InvalidConfiguration

DEFAULT_BUSINESS_TIMEZONE = "Australia/Sydney"


def get_business_zone(timezone_str: Optional[str] = None) -> ZoneInfo:
    """ZoneInfo for the business timezone (settings value when not given)."""
    if not timezone_str:
        from waitwise.config import get_settings
        timezone_str = get_settings().business_timezone or DEFAULT_BUSINESS_TIMEZONE
    try:
        return ZoneInfo(timezone_str)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidConfiguration(f"Unknown business timezone: {timezone_str}")


def ensure_aware(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from the store."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_business_time(value: datetime, tz: ZoneInfo) -> datetime:
    """Convert a stored instant into business wall-clock time."""
    return ensure_aware(value).astimezone(tz)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
