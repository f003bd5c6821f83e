"""Local rule cache for offline enforcement.

Holds the last successfully synced rule projection plus local counters in a
single JSON file. The cache is explicit: it is only replaced by a
successful sync, only dropped by invalidate(), and reports itself stale
once the last sync is older than max_staleness.
"""

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

from goodturkey.agent.stats import BlockStats
from goodturkey.errors import ValidationError
from goodturkey.models.projection import CachedRule, parse_projection

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1


class RuleCache:
    """File-backed cache of synced rules."""

    def __init__(self, cache_path: Path, max_staleness: timedelta = timedelta(hours=24)) -> None:
        """Initialize the cache.

        Args:
            cache_path: JSON file holding the cache
            max_staleness: Age of the last sync after which the cache is stale
        """
        self.cache_path = Path(cache_path).expanduser()
        self.max_staleness = max_staleness
        self.last_sync: Optional[datetime] = None
        self.stats = BlockStats()
        self._payload: Optional[dict[str, Any]] = None
        self._rules: list[CachedRule] = []

    @property
    def rules(self) -> list[CachedRule]:
        return self._rules

    @property
    def payload(self) -> Optional[dict[str, Any]]:
        return self._payload

    def load(self) -> "RuleCache":
        """Load cache from disk. A missing or corrupt file leaves it empty."""
        if not self.cache_path.exists():
            logger.debug(f"No rule cache at {self.cache_path}")
            return self

        try:
            data = json.loads(self.cache_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load rule cache {self.cache_path}: {e}")
            return self

        self.stats = BlockStats.from_dict(data.get("stats") or {})

        payload = data.get("payload")
        last_sync = data.get("last_sync")
        if payload is not None and last_sync:
            try:
                self._rules = parse_projection(payload)
                self._payload = payload
                self.last_sync = datetime.fromisoformat(last_sync)
            except (ValidationError, ValueError) as e:
                logger.warning(f"Ignoring cached rules: {e}")
                self._rules, self._payload, self.last_sync = [], None, None

        logger.debug(f"Loaded {len(self._rules)} cached rules (last sync: {self.last_sync})")
        return self

    def save(self) -> None:
        """Write cache to disk atomically."""
        data = {
            "version": CACHE_FORMAT_VERSION,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "payload": self._payload,
            "stats": self.stats.to_dict(),
        }

        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        # Write to temp file first, then rename (atomic)
        temp_file = self.cache_path.with_suffix(".tmp")
        temp_file.write_text(json.dumps(data, indent=2))
        temp_file.replace(self.cache_path)

    def replace_rules(self, payload: dict[str, Any], synced_at: datetime) -> list[CachedRule]:
        """Swap in a freshly synced projection and persist it.

        Raises:
            ValidationError: If the payload is not a rule projection
        """
        rules = parse_projection(payload)
        self._payload = payload
        self._rules = rules
        self.last_sync = synced_at
        self.save()
        logger.info(f"Rules synced: {len(rules)} sites")
        return rules

    def invalidate(self) -> None:
        """Drop cached rules (counters are kept)."""
        self._payload = None
        self._rules = []
        self.last_sync = None
        self.save()
        logger.info("Rule cache invalidated")

    def age(self, now: datetime) -> Optional[timedelta]:
        if self.last_sync is None:
            return None
        return now - self.last_sync

    def is_stale(self, now: datetime) -> bool:
        """True when never synced or the last sync is older than max_staleness."""
        age = self.age(now)
        return age is None or age > self.max_staleness

    def record_block(self, now: datetime) -> None:
        self.stats.record_block(now)
        self.save()

    def current_stats(self, now: datetime) -> BlockStats:
        """Counters rolled over to today's date."""
        self.stats.roll_over(now)
        return self.stats
