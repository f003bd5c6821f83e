"""Client-side agent: cached rules, sync and offline enforcement."""

from goodturkey.agent.cache import RuleCache
from goodturkey.agent.enforcer import AgentDecision, RuleEnforcer
from goodturkey.agent.stats import BlockStats
from goodturkey.agent.sync import SyncClient, SyncConfig, run_periodic_sync

__all__ = [
    "RuleCache",
    "AgentDecision",
    "RuleEnforcer",
    "BlockStats",
    "SyncClient",
    "SyncConfig",
    "run_periodic_sync",
]
