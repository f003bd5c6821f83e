"""Schedule evaluation: is access allowed right now?

Windows denote permitted access. A site with no windows is blocked around
the clock; a site with windows is blocked outside all of them.
"""

from datetime import datetime
from typing import Iterable

from goodturkey.models import TimeWindow

# Day abbreviations to day-of-week numbers (Sunday=0)
DAY_MAP = {
    "sun": 0,
    "mon": 1,
    "tue": 2,
    "wed": 3,
    "thu": 4,
    "fri": 5,
    "sat": 6,
}

DAY_NAMES = {number: name for name, number in DAY_MAP.items()}


def day_of_week(now: datetime) -> int:
    """Day of week of `now` in its own zone, Sunday=0 ... Saturday=6."""
    # datetime.weekday() is Monday=0
    return (now.weekday() + 1) % 7


def window_matches(window: TimeWindow, now: datetime) -> bool:
    """Check a single window against an instant (bounds inclusive)."""
    if window.day_of_week is not None and window.day_of_week != day_of_week(now):
        return False

    current_time = now.time().replace(microsecond=0)
    return window.start <= current_time <= window.end


def is_access_allowed(now: datetime, windows: Iterable[TimeWindow]) -> bool:
    """Decide whether access is allowed at `now` given the access windows.

    Args:
        now: Instant to evaluate, already in the enforcement zone
        windows: Access windows of one blocked site

    Returns:
        False if there are no windows, otherwise True iff any window matches
    """
    return any(window_matches(window, now) for window in windows)


def parse_day(value: str | int | None) -> int | None:
    """Parse a day selector ("mon", "Monday", "1", 1, "" / None for every day)."""
    if value is None:
        return None
    if isinstance(value, int):
        return value

    text = value.strip().lower()
    if not text or text in ("*", "all", "every", "daily"):
        return None
    if text.isdigit():
        return int(text)
    return DAY_MAP.get(text[:3], -1)
