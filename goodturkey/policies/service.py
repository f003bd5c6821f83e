"""Policy service: the authoritative enforcement point.

Ties the schedule evaluator and the unlock lifecycle to a store and a clock.
Every mutation follows the same shape: load (owner scoped), run the pure
lifecycle rule, write back conditioned on what was loaded.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional, Protocol

from goodturkey.clock import Clock
from goodturkey.models import (
    DEFAULT_CATEGORY_COLOR,
    Category,
    Restriction,
    SiteStatus,
    TimeWindow,
    new_id,
)
from goodturkey.models.projection import build_projection
from goodturkey.policies.lifecycle import RestrictionChange, UnlockLifecycle
from goodturkey.policies.matcher import (
    extract_hostname,
    hostname_matches,
    is_internal_url,
    normalize_pattern,
)
from goodturkey.policies.schedule import is_access_allowed

logger = logging.getLogger(__name__)


class SiteRepository(Protocol):
    """What the service needs from persistence (SiteStore implements it)."""

    def insert_restriction(self, restriction: Restriction) -> Restriction: ...
    def get_restriction(self, owner_id: str, restriction_id: str) -> Restriction: ...
    def list_restrictions(self, owner_id: str, active_only: bool = False) -> list[Restriction]: ...
    def update_restriction(self, updated: Restriction, expected: Restriction) -> Restriction: ...
    def delete_restriction(self, expected: Restriction) -> None: ...
    def increment_access_attempts(self, restriction_id: str) -> None: ...
    def insert_window(self, window: TimeWindow, created_at: datetime) -> TimeWindow: ...
    def get_window(self, owner_id: str, window_id: str) -> TimeWindow: ...
    def delete_window(self, window_id: str) -> None: ...
    def insert_category(self, category: Category) -> Category: ...
    def get_category(self, owner_id: str, category_id: str) -> Category: ...
    def list_categories(self, owner_id: str) -> list[Category]: ...
    def update_category(self, category: Category) -> Category: ...
    def delete_category(self, owner_id: str, category_id: str) -> None: ...


@dataclass(frozen=True)
class NavigationDecision:
    """Outcome of checking a URL against an owner's blocked sites."""

    url: str
    hostname: Optional[str]
    blocked: bool
    restriction: Optional[Restriction] = None


class PolicyService:
    """Enforces blocked-site policy for persisted records."""

    def __init__(
        self,
        store: SiteRepository,
        clock: Clock,
        lifecycle: Optional[UnlockLifecycle] = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Persistence collaborator
            clock: Source of "now" for every decision
            lifecycle: Unlock rules (default 6 hour delay)
        """
        self.store = store
        self.clock = clock
        self.lifecycle = lifecycle or UnlockLifecycle()

    # ------------------------------------------------------------------
    # Access decisions
    # ------------------------------------------------------------------

    def can_navigate(self, restriction: Restriction, now: Optional[datetime] = None) -> bool:
        """Decide whether navigation is allowed under one blocked site.

        An inactive site does not apply. For an active site the schedule
        decides. Denials bump the access-attempt counter; a failure to do so
        is logged and does not change the answer.
        """
        if not restriction.active:
            return True

        now = now or self.clock.now()
        if is_access_allowed(now, restriction.windows):
            return True

        try:
            self.store.increment_access_attempts(restriction.id)
        except Exception as e:
            logger.warning(f"Failed to record access attempt for {restriction.id}: {e}")
        return False

    def check_url(self, owner_id: str, url: str) -> NavigationDecision:
        """Check a navigated URL against all of an owner's active blocked sites."""
        if is_internal_url(url):
            return NavigationDecision(url=url, hostname=None, blocked=False)

        hostname = extract_hostname(url)
        if not hostname:
            return NavigationDecision(url=url, hostname=None, blocked=False)

        now = self.clock.now()
        for restriction in self.store.list_restrictions(owner_id, active_only=True):
            if not hostname_matches(hostname, restriction.pattern):
                continue
            if not self.can_navigate(restriction, now):
                logger.info(f"Blocked navigation to {hostname} (rule: {restriction.pattern})")
                return NavigationDecision(url=url, hostname=hostname, blocked=True, restriction=restriction)

        return NavigationDecision(url=url, hostname=hostname, blocked=False)

    # ------------------------------------------------------------------
    # Blocked sites
    # ------------------------------------------------------------------

    def add_site(self, owner_id: str, url: str, category_id: Optional[str] = None) -> Restriction:
        """Create a blocked site: active, no windows, no unlock request."""
        if category_id is not None:
            self.store.get_category(owner_id, category_id)

        restriction = Restriction(
            id=new_id(),
            owner_id=owner_id,
            pattern=normalize_pattern(url),
            category_id=category_id,
            created_at=self.clock.now(),
        )
        self.store.insert_restriction(restriction)
        logger.info(f"Blocking {restriction.pattern} ({restriction.id})")
        return restriction

    def get_site(self, owner_id: str, restriction_id: str) -> Restriction:
        return self.store.get_restriction(owner_id, restriction_id)

    def list_sites(self, owner_id: str) -> list[Restriction]:
        return self.store.list_restrictions(owner_id)

    def status(self, restriction: Restriction, now: Optional[datetime] = None) -> SiteStatus:
        return self.lifecycle.status(restriction, now or self.clock.now())

    def apply_mutation(
        self,
        restriction: Restriction,
        change: RestrictionChange,
        now: datetime,
    ) -> Restriction:
        """Compute the result of an update without persisting it.

        Raises:
            UnlockNotRequested: Deactivating without a cooldown in progress
            UnlockNotReady: Deactivating before the cooldown finished
            ValidationError: Empty hostname pattern
        """
        if change.pattern is not None:
            change = replace(change, pattern=normalize_pattern(change.pattern))
        return self.lifecycle.apply_change(restriction, change, now)

    def update_site(self, owner_id: str, restriction_id: str, change: RestrictionChange) -> Restriction:
        """Load, gate, and conditionally write an update."""
        current = self.store.get_restriction(owner_id, restriction_id)
        if change.category_id is not None and not change.clear_category:
            self.store.get_category(owner_id, change.category_id)

        updated = self.apply_mutation(current, change, self.clock.now())
        return self.store.update_restriction(updated, expected=current)

    def deactivate(self, owner_id: str, restriction_id: str) -> Restriction:
        return self.update_site(owner_id, restriction_id, RestrictionChange(active=False))

    def activate(self, owner_id: str, restriction_id: str) -> Restriction:
        return self.update_site(owner_id, restriction_id, RestrictionChange(active=True))

    def request_unlock(self, owner_id: str, restriction_id: str) -> SiteStatus:
        """Start the cooldown; repeated requests keep the first timestamp."""
        current = self.store.get_restriction(owner_id, restriction_id)
        now = self.clock.now()

        updated = self.lifecycle.request_unlock(current, now)
        if updated is not current:
            self.store.update_restriction(updated, expected=current)
        return self.lifecycle.status(updated, now)

    def cancel_unlock(self, owner_id: str, restriction_id: str) -> SiteStatus:
        current = self.store.get_restriction(owner_id, restriction_id)

        updated = self.lifecycle.cancel_unlock(current)
        if updated is not current:
            self.store.update_restriction(updated, expected=current)
        return self.lifecycle.status(updated, self.clock.now())

    def delete_site(self, owner_id: str, restriction_id: str) -> None:
        """Delete a blocked site and its windows once the cooldown is over."""
        current = self.store.get_restriction(owner_id, restriction_id)
        self.lifecycle.ensure_deletable(current, self.clock.now())
        self.store.delete_restriction(current)
        logger.info(f"Deleted blocked site {current.pattern} ({current.id})")

    # ------------------------------------------------------------------
    # Access windows
    # ------------------------------------------------------------------

    def add_window(
        self,
        owner_id: str,
        restriction_id: str,
        start: str,
        end: str,
        day_of_week: Optional[int] = None,
    ) -> TimeWindow:
        """Add an access window. Allowed regardless of lock state.

        Raises:
            ValidationError: start not before end, or day outside 0-6
            NotFound: Unknown blocked site
        """
        window = TimeWindow.parse(
            start=start,
            end=end,
            day_of_week=day_of_week,
            restriction_id=restriction_id,
        )
        self.store.get_restriction(owner_id, restriction_id)
        self.store.insert_window(window, created_at=self.clock.now())
        logger.info(f"Added window {window.start}-{window.end} to {restriction_id}")
        return window

    def remove_window(self, owner_id: str, window_id: str) -> None:
        window = self.store.get_window(owner_id, window_id)
        self.store.delete_window(window.id)
        logger.info(f"Removed window {window_id} from {window.restriction_id}")

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def add_category(self, owner_id: str, name: str, color: Optional[str] = None) -> Category:
        category = Category(
            id=new_id(),
            owner_id=owner_id,
            name=name.strip(),
            color=color or DEFAULT_CATEGORY_COLOR,
            created_at=self.clock.now(),
        )
        return self.store.insert_category(category)

    def list_categories(self, owner_id: str) -> list[Category]:
        return self.store.list_categories(owner_id)

    def update_category(
        self,
        owner_id: str,
        category_id: str,
        name: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Category:
        """Rename and/or recolor a category. None keeps the current value."""
        current = self.store.get_category(owner_id, category_id)
        updated = replace(
            current,
            name=name.strip() if name is not None else current.name,
            color=color or current.color,
        )
        return self.store.update_category(updated)

    def delete_category(self, owner_id: str, category_id: str) -> None:
        self.store.delete_category(owner_id, category_id)

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync_projection(self, owner_id: str) -> dict[str, Any]:
        """Read-only projection of active sites for agents."""
        restrictions = self.store.list_restrictions(owner_id, active_only=True)
        return build_projection(restrictions, self.clock.now())

