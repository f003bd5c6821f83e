"""Access decisions and unlock lifecycle for blocked sites."""

from goodturkey.policies.lifecycle import (
    DEFAULT_UNLOCK_DELAY,
    Inactive,
    LifecycleState,
    Locked,
    RestrictionChange,
    UnlockLifecycle,
    UnlockPending,
    UnlockReady,
)
from goodturkey.policies.matcher import extract_hostname, hostname_matches, normalize_pattern
from goodturkey.policies.schedule import day_of_week, is_access_allowed
from goodturkey.policies.service import NavigationDecision, PolicyService

__all__ = [
    "DEFAULT_UNLOCK_DELAY",
    "Inactive",
    "LifecycleState",
    "Locked",
    "RestrictionChange",
    "UnlockLifecycle",
    "UnlockPending",
    "UnlockReady",
    "extract_hostname",
    "hostname_matches",
    "normalize_pattern",
    "day_of_week",
    "is_access_allowed",
    "NavigationDecision",
    "PolicyService",
]
