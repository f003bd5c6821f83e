"""Read-only rule projection shipped from the authoritative store to agents.

Wire format (camelCase, as served by the /sync endpoint):

    {
      "timestamp": "2026-10-19T12:00:00+00:00",
      "rules": [
        {"id": "...", "url": "youtube.com",
         "timeWindows": [{"id": "...", "dayOfWeek": null,
                          "startTime": "14:00:00", "endTime": "14:30:00"}]}
      ]
    }

Only active sites are included. Owner identity and unlock state are left
out: agents never gate deactivation, they only block.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from goodturkey.errors import ValidationError
from goodturkey.models.sites import Restriction, TimeWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedRule:
    """An active blocked site as seen by an agent."""

    id: str
    url: str
    windows: tuple[TimeWindow, ...] = ()


def build_projection(restrictions: Iterable[Restriction], now: datetime) -> dict[str, Any]:
    """Project active blocked sites into the sync wire format."""
    rules = []
    for restriction in restrictions:
        if not restriction.active:
            continue
        rules.append({
            "id": restriction.id,
            "url": restriction.pattern,
            "timeWindows": [
                {
                    "id": window.id,
                    "dayOfWeek": window.day_of_week,
                    "startTime": window.start.isoformat(),
                    "endTime": window.end.isoformat(),
                }
                for window in restriction.windows
            ],
        })

    return {"timestamp": now.isoformat(), "rules": rules}


def _parse_window(raw: dict[str, Any]) -> TimeWindow:
    extra = {"id": str(raw["id"])} if raw.get("id") else {}
    return TimeWindow.parse(
        start=raw["startTime"],
        end=raw["endTime"],
        day_of_week=raw.get("dayOfWeek"),
        **extra,
    )


def parse_projection(payload: dict[str, Any]) -> list[CachedRule]:
    """Parse a sync payload into cached rules.

    Malformed windows are dropped with a warning; the rule itself is kept,
    so a bad window can only make the rule stricter. Rules without an id or
    url are dropped.

    Raises:
        ValidationError: If the payload has no rules list
    """
    raw_rules = payload.get("rules") if isinstance(payload, dict) else None
    if not isinstance(raw_rules, list):
        raise ValidationError("Sync payload has no 'rules' list")

    rules: list[CachedRule] = []
    for raw in raw_rules:
        if not isinstance(raw, dict) or not raw.get("id") or not raw.get("url"):
            logger.warning(f"Skipping malformed rule: {raw!r}")
            continue

        raw_windows = raw.get("timeWindows") or []
        if not isinstance(raw_windows, list):
            logger.warning(f"Ignoring malformed window list on rule {raw['id']}: {raw_windows!r}")
            raw_windows = []

        windows = []
        for raw_window in raw_windows:
            try:
                windows.append(_parse_window(raw_window))
            except (KeyError, TypeError, AttributeError, ValidationError) as e:
                logger.warning(f"Skipping malformed window on rule {raw['id']}: {e}")

        rules.append(CachedRule(id=str(raw["id"]), url=str(raw["url"]).lower(), windows=tuple(windows)))

    return rules
