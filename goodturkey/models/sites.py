"""Data models for blocked sites and their access windows."""

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Optional

from goodturkey.errors import ValidationError

DEFAULT_CATEGORY_COLOR = "#6B7280"

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def new_id() -> str:
    return str(uuid.uuid4())


def parse_time_of_day(value: str | time) -> time:
    """Parse "HH:MM" or "HH:MM:SS" into a time (seconds precision).

    Raises:
        ValidationError: If the string is not a valid 24-hour time
    """
    if isinstance(value, time):
        return value.replace(microsecond=0, tzinfo=None)

    match = _TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValidationError(f"Invalid time of day: {value!r} (expected HH:MM or HH:MM:SS)")

    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        raise ValidationError(f"Invalid time of day: {value!r}")
    return time(hour, minute, second)


@dataclass(frozen=True)
class TimeWindow:
    """A recurring interval during which access is permitted.

    Attributes:
        start: Start of the window (inclusive)
        end: End of the window (inclusive), same day as start
        day_of_week: 0=Sunday ... 6=Saturday, None for every day
        id: Window identifier
        restriction_id: Owning blocked site, None for cached copies
    """

    start: time
    end: time
    day_of_week: Optional[int] = None
    id: str = field(default_factory=new_id)
    restriction_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.day_of_week is not None and (
            isinstance(self.day_of_week, bool)
            or not isinstance(self.day_of_week, int)
            or not 0 <= self.day_of_week <= 6
        ):
            raise ValidationError(f"day_of_week must be 0-6 or empty, got {self.day_of_week!r}")
        if self.start >= self.end:
            raise ValidationError(
                f"Window start {self.start.isoformat()} must be before end {self.end.isoformat()}"
            )

    @classmethod
    def parse(
        cls,
        start: str | time,
        end: str | time,
        day_of_week: Optional[int] = None,
        **kwargs: str,
    ) -> "TimeWindow":
        """Build a window from loose input, validating the bounds."""
        return cls(
            start=parse_time_of_day(start),
            end=parse_time_of_day(end),
            day_of_week=day_of_week,
            **kwargs,
        )


@dataclass(frozen=True)
class Restriction:
    """A user's rule blocking a hostname pattern.

    Attributes:
        id: Unique identifier
        owner_id: Owning user
        pattern: Normalized hostname pattern, matched by substring
        active: Whether the restriction applies at all
        unlock_requested_at: When the unlock cooldown started (None if not requested)
        access_attempts: How many navigations were denied (informational)
        category_id: Optional category
        created_at: Creation instant
        windows: Access windows; empty means blocked at all times
    """

    id: str
    owner_id: str
    pattern: str
    active: bool = True
    unlock_requested_at: Optional[datetime] = None
    access_attempts: int = 0
    category_id: Optional[str] = None
    created_at: Optional[datetime] = None
    windows: tuple[TimeWindow, ...] = ()

    def __post_init__(self) -> None:
        # An inactive site with a pending unlock is not a representable state
        if not self.active and self.unlock_requested_at is not None:
            raise ValidationError(
                f"Blocked site {self.id} cannot be inactive with an unlock request pending"
            )


@dataclass(frozen=True)
class Category:
    """Grouping label for blocked sites."""

    id: str
    owner_id: str
    name: str
    color: str = DEFAULT_CATEGORY_COLOR
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValidationError("Category name required")
        if not _COLOR_RE.match(self.color):
            raise ValidationError(f"Category color must be #RRGGBB, got {self.color!r}")


@dataclass(frozen=True)
class SiteStatus:
    """Lifecycle view of a blocked site, derived from stored fields and now.

    remaining_ms is None when no unlock has been requested.
    """

    restriction_id: str
    state: str
    active: bool
    unlock_requested_at: Optional[datetime]
    ready: bool
    remaining_ms: Optional[int]
