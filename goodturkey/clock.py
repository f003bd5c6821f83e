"""Injectable wall-clock sources.

The schedule evaluator reads day-of-week and time-of-day straight off the
instant it is given, so every enforcement point must ask the same kind of
clock (same zone) for "now".
"""

from datetime import datetime, timedelta, tzinfo
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from goodturkey.errors import ConfigError


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in a fixed zone (system local zone when tz is None)."""

    def __init__(self, tz: Optional[tzinfo] = None) -> None:
        self.tz = tz

    def now(self) -> datetime:
        if self.tz is None:
            return datetime.now().astimezone()
        return datetime.now(self.tz)


class FixedClock:
    """Settable clock for tests and replays."""

    def __init__(self, current: datetime) -> None:
        if current.tzinfo is None:
            raise ValueError("FixedClock needs a timezone-aware datetime")
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> datetime:
        self.current = self.current + delta
        return self.current

    def set(self, current: datetime) -> None:
        self.current = current


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Turn an IANA zone name into a tzinfo. None/empty means system local."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown timezone: {name}") from e
