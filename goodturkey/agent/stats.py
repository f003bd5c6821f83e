"""Local blocking counters kept by the agent."""

from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Optional


@dataclass
class BlockStats:
    """Simple per-device counters.

    Attributes:
        blocked_today: Navigations blocked since local midnight
        total_blocked: Navigations blocked since the counters were created
        streak: Consecutive days that ended with at least one block
        last_date: Local day the counters were last rolled over to
    """

    blocked_today: int = 0
    total_blocked: int = 0
    streak: int = 0
    last_date: Optional[date] = None

    def roll_over(self, now: datetime) -> None:
        """Start a new day if `now` is past last_date.

        The streak grows when the day being closed had blocks and resets
        otherwise.
        """
        today = now.date()
        if self.last_date is None:
            self.last_date = today
            return
        if today <= self.last_date:
            return

        if self.blocked_today > 0 and (today - self.last_date).days == 1:
            self.streak += 1
        else:
            self.streak = 0
        self.blocked_today = 0
        self.last_date = today

    def record_block(self, now: datetime) -> None:
        self.roll_over(now)
        self.blocked_today += 1
        self.total_blocked += 1

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["last_date"] = self.last_date.isoformat() if self.last_date else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BlockStats":
        last_date = data.get("last_date")
        return cls(
            blocked_today=int(data.get("blocked_today", 0)),
            total_blocked=int(data.get("total_blocked", 0)),
            streak=int(data.get("streak", 0)),
            last_date=date.fromisoformat(last_date) if last_date else None,
        )
