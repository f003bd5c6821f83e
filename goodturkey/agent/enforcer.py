"""Offline navigation enforcement against the local rule cache.

Uses the same schedule evaluator as the authoritative service. Cached rules
are all active (the projection only carries active sites), so a match is
blocked unless one of its windows is open.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from goodturkey.agent.cache import RuleCache
from goodturkey.clock import Clock
from goodturkey.models.projection import CachedRule
from goodturkey.policies.matcher import extract_hostname, hostname_matches, is_internal_url
from goodturkey.policies.schedule import is_access_allowed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentDecision:
    url: str
    blocked: bool
    rule: Optional[CachedRule] = None
    stale: bool = False


class RuleEnforcer:
    """Evaluates navigations against cached rules and counts blocks."""

    def __init__(self, cache: RuleCache, clock: Clock) -> None:
        self.cache = cache
        self.clock = clock

    def find_blocking_rule(self, hostname: str) -> Optional[CachedRule]:
        now = self.clock.now()
        for rule in self.cache.rules:
            if hostname_matches(hostname, rule.url) and not is_access_allowed(now, rule.windows):
                return rule
        return None

    def check(self, url: str) -> AgentDecision:
        """Decide a navigation. Blocks are counted; counting failures are logged."""
        now = self.clock.now()
        stale = self.cache.is_stale(now)

        if is_internal_url(url):
            return AgentDecision(url=url, blocked=False, stale=stale)

        hostname = extract_hostname(url)
        if not hostname:
            return AgentDecision(url=url, blocked=False, stale=stale)

        rule = self.find_blocking_rule(hostname)
        if rule is None:
            return AgentDecision(url=url, blocked=False, stale=stale)

        logger.info(f"Blocked {hostname} (rule: {rule.url})")
        try:
            self.cache.record_block(now)
        except OSError as e:
            logger.warning(f"Failed to record blocked attempt: {e}")
        return AgentDecision(url=url, blocked=True, rule=rule, stale=stale)
