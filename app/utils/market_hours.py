"""
Market Hours Utility

US equity session boundaries (NYSE/NASDAQ, Eastern time) and the
helpers used to classify earnings disclosure times into sessions.
"""

from datetime import date, datetime, time, timezone
from typing import Optional

import pytz


# US Stock Market Hours (ET)
MARKET_OPEN_TIME = time(9, 30)  # 9:30 AM ET
MARKET_CLOSE_TIME = time(16, 0)  # 4:00 PM ET

# Provider markers for disclosure time-of-day
BEFORE_MARKET_MARKERS = {"bmo", "time-pre-market"}
AFTER_MARKET_MARKERS = {"amc", "time-after-hours"}

EASTERN = pytz.timezone("America/New_York")


def utcnow() -> datetime:
    """
    Current UTC time as a naive datetime (the form stored in the database).
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_current_eastern_time() -> datetime:
    """
    Get current time in US/Eastern.

    Returns:
        datetime: Current datetime in Eastern timezone
    """
    return datetime.now(EASTERN)


def get_market_today() -> date:
    """
    Calendar date of the current trading day in US/Eastern.

    Used as the boundary between historical and upcoming earnings.
    """
    return get_current_eastern_time().date()


def _parse_clock(value: str) -> Optional[time]:
    """Parse "HH:MM" or "HH:MM:SS"; returns None when not a clock time."""
    parts = value.split(":")
    try:
        hour = int(parts[0])
        minute = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        return None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return time(hour, minute)


def is_before_market(event_time: Optional[str]) -> bool:
    """
    Check if a disclosure time falls in the before-market session.

    Args:
        event_time: Provider time-of-day ("bmo", "time-pre-market", "07:00:00", ...)

    Returns:
        bool: True for no time given, a pre-market marker, or a clock time before 09:30
    """
    if not event_time:
        return True

    value = event_time.strip().lower()
    if value in BEFORE_MARKET_MARKERS or "before" in value:
        return True

    if ":" in value:
        clock = _parse_clock(value)
        return clock is not None and clock < MARKET_OPEN_TIME

    return False


def is_after_market(event_time: Optional[str]) -> bool:
    """
    Check if a disclosure time falls in the after-market session.

    Args:
        event_time: Provider time-of-day

    Returns:
        bool: True for a post-market marker or a clock time at/after 16:00
    """
    if not event_time:
        return False

    value = event_time.strip().lower()
    if value in AFTER_MARKET_MARKERS or "after" in value:
        return True

    if ":" in value:
        clock = _parse_clock(value)
        return clock is not None and clock >= MARKET_CLOSE_TIME

    return False


def get_session(event_time: Optional[str]) -> Optional[str]:
    """
    Get the session bucket for a disclosure time.

    Returns:
        str: 'before_market', 'after_market', or None for intraday/unknown times
    """
    if is_before_market(event_time):
        return "before_market"
    if is_after_market(event_time):
        return "after_market"
    return None
