"""Unlock lifecycle for blocked sites.

A blocked site can only be deactivated or deleted after the user has asked
to unlock it and then waited out a fixed delay. Storage keeps a single
nullable timestamp; internally it is read as one of four states:

    Locked          active, no unlock requested
    UnlockPending   active, unlock requested, delay not yet elapsed
    UnlockReady     active, unlock requested, delay elapsed
    Inactive        not active (only reachable from UnlockReady)

Readiness is always derived from `now`; nothing is scheduled.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional, Union

from goodturkey.errors import UnlockNotReady, UnlockNotRequested
from goodturkey.models import Restriction, SiteStatus

logger = logging.getLogger(__name__)

DEFAULT_UNLOCK_DELAY = timedelta(hours=6)

_ONE_US = timedelta(microseconds=1)


@dataclass(frozen=True)
class Locked:
    name = "locked"


@dataclass(frozen=True)
class UnlockPending:
    requested_at: datetime
    remaining_ms: int
    name = "unlock_pending"


@dataclass(frozen=True)
class UnlockReady:
    requested_at: datetime
    name = "unlock_ready"


@dataclass(frozen=True)
class Inactive:
    name = "inactive"


LifecycleState = Union[Locked, UnlockPending, UnlockReady, Inactive]


@dataclass(frozen=True)
class RestrictionChange:
    """Requested update to a blocked site. None fields are left unchanged."""

    pattern: Optional[str] = None
    active: Optional[bool] = None
    category_id: Optional[str] = None
    clear_category: bool = False


class UnlockLifecycle:
    """State machine gating deactivation and deletion of blocked sites.

    All methods are pure: they take a Restriction and return a new one (or
    raise), never touching storage or the clock themselves.
    """

    def __init__(self, delay: timedelta = DEFAULT_UNLOCK_DELAY) -> None:
        if delay < timedelta(0):
            raise ValueError("Unlock delay cannot be negative")
        self.delay = delay

    def remaining_ms(self, requested_at: datetime, now: datetime) -> int:
        """Milliseconds left before an unlock requested at `requested_at` is ready.

        Rounded up, so the value only reaches 0 once the delay has fully
        elapsed. Never negative. A clock that reads earlier than
        `requested_at` (skew between writer and reader) counts as no time
        elapsed, so the result is clamped to the full delay.
        """
        remaining = self.delay - (now - requested_at)
        remaining = min(max(remaining, timedelta(0)), self.delay)
        micros = remaining // _ONE_US
        return -(-micros // 1000)

    def state(self, restriction: Restriction, now: datetime) -> LifecycleState:
        if not restriction.active:
            return Inactive()

        requested_at = restriction.unlock_requested_at
        if requested_at is None:
            return Locked()

        remaining = self.remaining_ms(requested_at, now)
        if remaining == 0:
            return UnlockReady(requested_at=requested_at)
        return UnlockPending(requested_at=requested_at, remaining_ms=remaining)

    def status(self, restriction: Restriction, now: datetime) -> SiteStatus:
        """Observable lifecycle view: active, unlock_requested_at, ready, remaining_ms."""
        state = self.state(restriction, now)

        if isinstance(state, UnlockPending):
            ready, remaining = False, state.remaining_ms
        elif isinstance(state, UnlockReady):
            ready, remaining = True, 0
        else:
            ready, remaining = False, None

        return SiteStatus(
            restriction_id=restriction.id,
            state=state.name,
            active=restriction.active,
            unlock_requested_at=restriction.unlock_requested_at,
            ready=ready,
            remaining_ms=remaining,
        )

    def request_unlock(self, restriction: Restriction, now: datetime) -> Restriction:
        """Start the cooldown. Idempotent while a cooldown is already running."""
        state = self.state(restriction, now)

        if isinstance(state, Locked):
            logger.info(f"Unlock requested for {restriction.pattern} ({restriction.id})")
            return replace(restriction, unlock_requested_at=now)

        if isinstance(state, Inactive):
            logger.debug(f"Ignoring unlock request for inactive site {restriction.id}")
        return restriction

    def cancel_unlock(self, restriction: Restriction) -> Restriction:
        """Drop a running cooldown. No-op when none is running."""
        if restriction.unlock_requested_at is None:
            return restriction

        logger.info(f"Unlock cancelled for {restriction.pattern} ({restriction.id})")
        return replace(restriction, unlock_requested_at=None)

    def ensure_ready(self, restriction: Restriction, now: datetime) -> None:
        """Raise unless the site is in UnlockReady.

        Raises:
            UnlockNotRequested: No cooldown in progress
            UnlockNotReady: Cooldown in progress but not finished
        """
        state = self.state(restriction, now)

        if isinstance(state, UnlockReady):
            return
        if isinstance(state, UnlockPending):
            logger.warning(
                f"Refused release of {restriction.pattern}: {state.remaining_ms} ms remaining"
            )
            raise UnlockNotReady(state.remaining_ms, restriction.id)

        logger.warning(f"Refused release of {restriction.pattern}: unlock not requested")
        raise UnlockNotRequested(restriction.id)

    def deactivate(self, restriction: Restriction, now: datetime) -> Restriction:
        """UnlockReady -> Inactive. Already-inactive sites are returned unchanged."""
        if not restriction.active:
            return restriction

        self.ensure_ready(restriction, now)
        logger.info(f"Deactivated {restriction.pattern} ({restriction.id})")
        return replace(restriction, active=False, unlock_requested_at=None)

    def reactivate(self, restriction: Restriction) -> Restriction:
        """Set active and re-arm the lock. Always allowed."""
        if not restriction.active:
            logger.info(f"Reactivated {restriction.pattern} ({restriction.id})")
        return replace(restriction, active=True, unlock_requested_at=None)

    def ensure_deletable(self, restriction: Restriction, now: datetime) -> None:
        """Deletion needs UnlockReady; an inactive site already went through it."""
        if isinstance(self.state(restriction, now), Inactive):
            return
        self.ensure_ready(restriction, now)

    def apply_change(
        self,
        restriction: Restriction,
        change: RestrictionChange,
        now: datetime,
    ) -> Restriction:
        """Apply an update, gating it if it turns the site off.

        Every accepted update leaves unlock_requested_at cleared: a
        deactivation clears it on the way to Inactive, anything else clears
        a stale request.
        """
        deactivating = change.active is False and restriction.active

        if deactivating:
            updated = self.deactivate(restriction, now)
        else:
            active = restriction.active if change.active is None else change.active
            updated = replace(restriction, active=active, unlock_requested_at=None)
            if change.active is True and not restriction.active:
                logger.info(f"Reactivated {restriction.pattern} ({restriction.id})")

        if change.pattern is not None:
            updated = replace(updated, pattern=change.pattern)
        if change.clear_category:
            updated = replace(updated, category_id=None)
        elif change.category_id is not None:
            updated = replace(updated, category_id=change.category_id)

        return updated
