"""Tests for the unlock lifecycle state machine."""

from datetime import datetime, timedelta, timezone

import pytest

from goodturkey.errors import UnlockNotReady, UnlockNotRequested, ValidationError
from goodturkey.models import Restriction
from goodturkey.policies.lifecycle import (
    Inactive,
    Locked,
    RestrictionChange,
    UnlockLifecycle,
    UnlockPending,
    UnlockReady,
)

T = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)


def make_site(**kwargs: object) -> Restriction:
    defaults: dict = {"id": "site-1", "owner_id": "alice", "pattern": "youtube.com"}
    defaults.update(kwargs)
    return Restriction(**defaults)


@pytest.fixture()
def lifecycle() -> UnlockLifecycle:
    return UnlockLifecycle(timedelta(hours=6))


class TestStates:
    def test_locked(self, lifecycle: UnlockLifecycle) -> None:
        assert isinstance(lifecycle.state(make_site(), T), Locked)

    def test_pending_then_ready(self, lifecycle: UnlockLifecycle) -> None:
        site = make_site(unlock_requested_at=T)
        assert isinstance(lifecycle.state(site, T + 5 * HOUR), UnlockPending)
        assert isinstance(lifecycle.state(site, T + 6 * HOUR), UnlockReady)

    def test_inactive(self, lifecycle: UnlockLifecycle) -> None:
        assert isinstance(lifecycle.state(make_site(active=False), T), Inactive)

    def test_inactive_with_timestamp_is_unrepresentable(self) -> None:
        with pytest.raises(ValidationError):
            make_site(active=False, unlock_requested_at=T)


class TestRemainingMs:
    def test_full_delay_at_request(self, lifecycle: UnlockLifecycle) -> None:
        assert lifecycle.remaining_ms(T, T) == 6 * 3600 * 1000

    def test_zero_exactly_at_delay(self, lifecycle: UnlockLifecycle) -> None:
        assert lifecycle.remaining_ms(T, T + 6 * HOUR) == 0
        assert lifecycle.remaining_ms(T, T + 6 * HOUR - timedelta(microseconds=1)) == 1

    def test_never_negative(self, lifecycle: UnlockLifecycle) -> None:
        assert lifecycle.remaining_ms(T, T + 48 * HOUR) == 0

    def test_clock_skew_clamped_to_delay(self, lifecycle: UnlockLifecycle) -> None:
        assert lifecycle.remaining_ms(T, T - HOUR) == 6 * 3600 * 1000

    def test_monotonic(self, lifecycle: UnlockLifecycle) -> None:
        values = [lifecycle.remaining_ms(T, T + timedelta(minutes=m)) for m in range(0, 400, 7)]
        assert values == sorted(values, reverse=True)

    def test_status_view(self, lifecycle: UnlockLifecycle) -> None:
        status = lifecycle.status(make_site(unlock_requested_at=T), T + 5 * HOUR)
        assert status.state == "unlock_pending"
        assert status.ready is False
        assert status.remaining_ms == 3_600_000

        locked = lifecycle.status(make_site(), T)
        assert locked.remaining_ms is None
        assert locked.ready is False


class TestTransitions:
    def test_request_unlock_sets_timestamp(self, lifecycle: UnlockLifecycle) -> None:
        site = lifecycle.request_unlock(make_site(), T)
        assert site.unlock_requested_at == T

    def test_request_unlock_is_idempotent(self, lifecycle: UnlockLifecycle) -> None:
        site = make_site(unlock_requested_at=T)
        again = lifecycle.request_unlock(site, T + 2 * HOUR)
        assert again is site
        assert again.unlock_requested_at == T

    def test_request_unlock_on_inactive_is_noop(self, lifecycle: UnlockLifecycle) -> None:
        site = make_site(active=False)
        assert lifecycle.request_unlock(site, T) is site

    def test_cancel_unlock(self, lifecycle: UnlockLifecycle) -> None:
        site = lifecycle.cancel_unlock(make_site(unlock_requested_at=T))
        assert site.unlock_requested_at is None
        assert isinstance(lifecycle.state(site, T + 7 * HOUR), Locked)

    def test_cancel_without_request_is_noop(self, lifecycle: UnlockLifecycle) -> None:
        site = make_site()
        assert lifecycle.cancel_unlock(site) is site

    def test_deactivate_without_request(self, lifecycle: UnlockLifecycle) -> None:
        with pytest.raises(UnlockNotRequested):
            lifecycle.deactivate(make_site(), T)

    def test_deactivate_before_ready(self, lifecycle: UnlockLifecycle) -> None:
        with pytest.raises(UnlockNotReady) as exc_info:
            lifecycle.deactivate(make_site(unlock_requested_at=T), T + 5 * HOUR)
        assert exc_info.value.remaining_ms == 3_600_000

    def test_deactivate_when_ready(self, lifecycle: UnlockLifecycle) -> None:
        site = lifecycle.deactivate(make_site(unlock_requested_at=T), T + 6 * HOUR)
        assert site.active is False
        assert site.unlock_requested_at is None

    def test_reactivate_rearms_lock(self, lifecycle: UnlockLifecycle) -> None:
        site = lifecycle.reactivate(make_site(active=False))
        assert site.active is True
        assert isinstance(lifecycle.state(site, T), Locked)

    def test_delete_gate(self, lifecycle: UnlockLifecycle) -> None:
        site = make_site(unlock_requested_at=T)
        with pytest.raises(UnlockNotReady):
            lifecycle.ensure_deletable(site, T + 5 * HOUR)
        lifecycle.ensure_deletable(site, T + 6 * HOUR)

    def test_delete_inactive_allowed(self, lifecycle: UnlockLifecycle) -> None:
        lifecycle.ensure_deletable(make_site(active=False), T)

    def test_delete_locked_refused(self, lifecycle: UnlockLifecycle) -> None:
        with pytest.raises(UnlockNotRequested):
            lifecycle.ensure_deletable(make_site(), T)

    def test_zero_delay_ready_immediately(self) -> None:
        lifecycle = UnlockLifecycle(timedelta(0))
        site = lifecycle.request_unlock(make_site(), T)
        assert lifecycle.deactivate(site, T).active is False

    def test_negative_delay_rejected(self) -> None:
        with pytest.raises(ValueError):
            UnlockLifecycle(timedelta(hours=-1))


class TestApplyChange:
    def test_rename_clears_pending_unlock(self, lifecycle: UnlockLifecycle) -> None:
        site = make_site(unlock_requested_at=T)
        updated = lifecycle.apply_change(site, RestrictionChange(pattern="vimeo.com"), T + HOUR)
        assert updated.pattern == "vimeo.com"
        assert updated.unlock_requested_at is None

    def test_deactivate_gated(self, lifecycle: UnlockLifecycle) -> None:
        with pytest.raises(UnlockNotRequested):
            lifecycle.apply_change(make_site(), RestrictionChange(active=False), T)

    def test_deactivate_with_other_fields(self, lifecycle: UnlockLifecycle) -> None:
        site = make_site(unlock_requested_at=T, category_id="cat-1")
        updated = lifecycle.apply_change(
            site, RestrictionChange(active=False, clear_category=True), T + 6 * HOUR,
        )
        assert updated.active is False
        assert updated.category_id is None

    def test_activate_inactive(self, lifecycle: UnlockLifecycle) -> None:
        updated = lifecycle.apply_change(make_site(active=False), RestrictionChange(active=True), T)
        assert updated.active is True
        assert updated.unlock_requested_at is None

    def test_set_category(self, lifecycle: UnlockLifecycle) -> None:
        updated = lifecycle.apply_change(make_site(), RestrictionChange(category_id="cat-2"), T)
        assert updated.category_id == "cat-2"
