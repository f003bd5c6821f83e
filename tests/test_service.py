"""Tests for the policy service over a real DuckDB store."""

from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from goodturkey.clock import FixedClock
from goodturkey.errors import (
    ConcurrentModification,
    NotFound,
    UnlockNotReady,
    UnlockNotRequested,
    ValidationError,
)
from goodturkey.models import Restriction
from goodturkey.policies import PolicyService, RestrictionChange, UnlockLifecycle
from goodturkey.storage.db import SiteStore

# Monday 2026-10-19, 09:00 UTC
T = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)


@pytest.fixture()
def store(tmp_path: Path) -> Iterator[SiteStore]:
    with SiteStore(tmp_path / "sites.db") as s:
        yield s


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(T)


@pytest.fixture()
def service(store: SiteStore, clock: FixedClock) -> PolicyService:
    return PolicyService(store, clock, UnlockLifecycle(timedelta(hours=6)))


class FailingCounterStore:
    """Store whose attempt counter is broken."""

    def increment_access_attempts(self, restriction_id: str) -> None:
        raise RuntimeError("database is locked")


class TestCanNavigate:
    def test_blocked_without_windows(self, service: PolicyService, store: SiteStore) -> None:
        site = service.add_site("alice", "youtube.com")

        assert service.can_navigate(site) is False
        assert store.get_restriction("alice", site.id).access_attempts == 1

    def test_allowed_inside_window(self, service: PolicyService, store: SiteStore) -> None:
        site = service.add_site("alice", "youtube.com")
        service.add_window("alice", site.id, "08:00", "10:00")
        site = service.get_site("alice", site.id)

        assert service.can_navigate(site) is True
        assert store.get_restriction("alice", site.id).access_attempts == 0

    def test_inactive_site_does_not_apply(self, service: PolicyService) -> None:
        site = Restriction(id="s", owner_id="alice", pattern="x.com", active=False)
        assert service.can_navigate(site) is True

    def test_counter_failure_does_not_change_decision(self, clock: FixedClock) -> None:
        service = PolicyService(FailingCounterStore(), clock)  # type: ignore[arg-type]
        site = Restriction(id="s", owner_id="alice", pattern="x.com")
        assert service.can_navigate(site) is False


class TestCheckUrl:
    def test_blocks_matching_hostname(self, service: PolicyService) -> None:
        service.add_site("alice", "https://www.youtube.com/")

        decision = service.check_url("alice", "https://m.youtube.com/watch?v=1")
        assert decision.blocked is True
        assert decision.hostname == "m.youtube.com"
        assert decision.restriction is not None
        assert decision.restriction.pattern == "youtube.com"

    def test_other_owner_not_blocked(self, service: PolicyService) -> None:
        service.add_site("alice", "youtube.com")
        assert service.check_url("bob", "https://youtube.com").blocked is False

    def test_internal_urls_never_blocked(self, service: PolicyService) -> None:
        service.add_site("alice", "chrome")
        assert service.check_url("alice", "chrome://settings").blocked is False

    def test_window_opens_access(self, service: PolicyService, clock: FixedClock) -> None:
        site = service.add_site("alice", "reddit.com")
        service.add_window("alice", site.id, "12:00", "13:00")

        assert service.check_url("alice", "reddit.com").blocked is True
        clock.set(T.replace(hour=12, minute=30))
        assert service.check_url("alice", "reddit.com").blocked is False


class TestUnlockFlow:
    def test_delete_waits_for_delay(self, service: PolicyService, clock: FixedClock) -> None:
        site = service.add_site("alice", "youtube.com")
        service.request_unlock("alice", site.id)

        clock.advance(5 * HOUR)
        with pytest.raises(UnlockNotReady) as exc_info:
            service.delete_site("alice", site.id)
        assert exc_info.value.remaining_ms == 3_600_000

        clock.advance(HOUR)
        service.delete_site("alice", site.id)
        with pytest.raises(NotFound):
            service.get_site("alice", site.id)

    def test_deactivate_without_request(self, service: PolicyService) -> None:
        site = service.add_site("alice", "youtube.com")
        with pytest.raises(UnlockNotRequested):
            service.deactivate("alice", site.id)

    def test_refused_release_leaves_record_untouched(self, service: PolicyService, clock: FixedClock) -> None:
        site = service.add_site("alice", "youtube.com")
        service.request_unlock("alice", site.id)
        clock.advance(HOUR)

        with pytest.raises(UnlockNotReady):
            service.deactivate("alice", site.id)

        loaded = service.get_site("alice", site.id)
        assert loaded.active is True
        assert loaded.unlock_requested_at == T

    def test_repeated_request_keeps_first_timestamp(self, service: PolicyService, clock: FixedClock) -> None:
        site = service.add_site("alice", "youtube.com")
        service.request_unlock("alice", site.id)
        clock.advance(2 * HOUR)

        status = service.request_unlock("alice", site.id)
        assert status.unlock_requested_at == T
        assert status.remaining_ms == 4 * 3600 * 1000

    def test_deactivate_then_reactivate(self, service: PolicyService, clock: FixedClock) -> None:
        site = service.add_site("alice", "youtube.com")
        service.request_unlock("alice", site.id)
        clock.advance(6 * HOUR)

        deactivated = service.deactivate("alice", site.id)
        assert deactivated.active is False
        assert deactivated.unlock_requested_at is None

        reactivated = service.activate("alice", site.id)
        assert reactivated.active is True
        assert service.status(reactivated).state == "locked"

    def test_update_cancels_pending_unlock(self, service: PolicyService, clock: FixedClock) -> None:
        site = service.add_site("alice", "youtube.com")
        service.request_unlock("alice", site.id)
        clock.advance(HOUR)

        updated = service.update_site("alice", site.id, RestrictionChange(pattern="https://Vimeo.com/x"))
        assert updated.pattern == "vimeo.com"
        assert service.get_site("alice", site.id).unlock_requested_at is None

    def test_cancel_unlock(self, service: PolicyService) -> None:
        site = service.add_site("alice", "youtube.com")
        service.request_unlock("alice", site.id)

        status = service.cancel_unlock("alice", site.id)
        assert status.state == "locked"
        assert service.get_site("alice", site.id).unlock_requested_at is None

    def test_stale_read_loses(self, service: PolicyService, clock: FixedClock) -> None:
        site = service.add_site("alice", "youtube.com")
        service.request_unlock("alice", site.id)
        clock.advance(6 * HOUR)
        stale = service.get_site("alice", site.id)

        service.cancel_unlock("alice", site.id)

        deactivated = service.apply_mutation(stale, RestrictionChange(active=False), clock.now())
        with pytest.raises(ConcurrentModification):
            service.store.update_restriction(deactivated, expected=stale)
        assert service.get_site("alice", site.id).active is True

    def test_unknown_site(self, service: PolicyService) -> None:
        with pytest.raises(NotFound):
            service.request_unlock("alice", "missing")


class TestUpdateSite:
    def test_rename_to_existing_pattern_rejected(self, service: PolicyService) -> None:
        service.add_site("alice", "youtube.com")
        vimeo = service.add_site("alice", "vimeo.com")

        with pytest.raises(ValidationError):
            service.update_site("alice", vimeo.id, RestrictionChange(pattern="https://www.YouTube.com"))
        assert service.get_site("alice", vimeo.id).pattern == "vimeo.com"

    def test_rename_to_same_pattern_allowed(self, service: PolicyService) -> None:
        site = service.add_site("alice", "youtube.com")
        updated = service.update_site("alice", site.id, RestrictionChange(pattern="YouTube.com"))
        assert updated.pattern == "youtube.com"

    def test_other_owners_pattern_does_not_clash(self, service: PolicyService) -> None:
        service.add_site("bob", "youtube.com")
        site = service.add_site("alice", "vimeo.com")
        updated = service.update_site("alice", site.id, RestrictionChange(pattern="youtube.com"))
        assert updated.pattern == "youtube.com"


class TestWindows:
    def test_add_window_any_state(self, service: PolicyService) -> None:
        site = service.add_site("alice", "youtube.com")
        window = service.add_window("alice", site.id, "19:00", "21:00", day_of_week=6)

        loaded = service.get_site("alice", site.id)
        assert loaded.windows == (window,)

    def test_invalid_window_rejected(self, service: PolicyService) -> None:
        site = service.add_site("alice", "youtube.com")
        with pytest.raises(ValidationError):
            service.add_window("alice", site.id, "21:00", "19:00")
        with pytest.raises(ValidationError):
            service.add_window("alice", site.id, "19:00", "21:00", day_of_week=7)
        assert service.get_site("alice", site.id).windows == ()

    def test_add_window_to_other_owners_site(self, service: PolicyService) -> None:
        site = service.add_site("alice", "youtube.com")
        with pytest.raises(NotFound):
            service.add_window("bob", site.id, "19:00", "21:00")

    def test_remove_window(self, service: PolicyService) -> None:
        site = service.add_site("alice", "youtube.com")
        window = service.add_window("alice", site.id, "19:00", "21:00")

        with pytest.raises(NotFound):
            service.remove_window("bob", window.id)
        service.remove_window("alice", window.id)
        assert service.get_site("alice", site.id).windows == ()


class TestCategoriesAndProjection:
    def test_site_with_category(self, service: PolicyService) -> None:
        cat = service.add_category("alice", "Social", "#FF0000")
        site = service.add_site("alice", "x.com", category_id=cat.id)
        assert service.get_site("alice", site.id).category_id == cat.id

    def test_unknown_category_rejected(self, service: PolicyService) -> None:
        with pytest.raises(NotFound):
            service.add_site("alice", "x.com", category_id="missing")

    def test_bad_color_rejected(self, service: PolicyService) -> None:
        with pytest.raises(ValidationError):
            service.add_category("alice", "Social", "red")

    def test_update_category(self, service: PolicyService) -> None:
        cat = service.add_category("alice", "Social")

        updated = service.update_category("alice", cat.id, name=" Video ", color="#00FF00")
        assert (updated.name, updated.color) == ("Video", "#00FF00")
        assert service.list_categories("alice")[0].name == "Video"

        recolored = service.update_category("alice", cat.id, color="#0000FF")
        assert recolored.name == "Video"

    def test_update_category_validates(self, service: PolicyService) -> None:
        cat = service.add_category("alice", "Social")
        with pytest.raises(ValidationError):
            service.update_category("alice", cat.id, color="green")
        with pytest.raises(NotFound):
            service.update_category("bob", cat.id, name="Mine")

    def test_projection_only_active(self, service: PolicyService, clock: FixedClock) -> None:
        kept = service.add_site("alice", "youtube.com")
        service.add_window("alice", kept.id, "14:00", "14:30")
        dropped = service.add_site("alice", "reddit.com")
        service.request_unlock("alice", dropped.id)
        clock.advance(6 * HOUR)
        service.deactivate("alice", dropped.id)

        payload = service.sync_projection("alice")

        assert payload["timestamp"] == clock.now().isoformat()
        assert [rule["url"] for rule in payload["rules"]] == ["youtube.com"]
        window = payload["rules"][0]["timeWindows"][0]
        assert window["startTime"] == "14:00:00"
        assert window["endTime"] == "14:30:00"
        assert window["dayOfWeek"] is None


def test_empty_window_list_means_blocked(service: PolicyService) -> None:
    site = service.add_site("alice", "news.ycombinator.com")
    assert service.get_site("alice", site.id).windows == ()
    assert service.check_url("alice", "https://news.ycombinator.com").blocked is True
