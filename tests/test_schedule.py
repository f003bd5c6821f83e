"""Tests for the schedule evaluator."""

from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from goodturkey.errors import ValidationError
from goodturkey.models import TimeWindow
from goodturkey.policies.schedule import day_of_week, is_access_allowed, parse_day

# 2026-10-18 is a Sunday
SUNDAY = datetime(2026, 10, 18, tzinfo=timezone.utc)


def at(day_offset: int, hour: int, minute: int = 0, second: int = 0) -> datetime:
    return SUNDAY + timedelta(days=day_offset, hours=hour, minutes=minute, seconds=second)


class TestDayOfWeek:
    def test_sunday_is_zero(self) -> None:
        assert day_of_week(SUNDAY) == 0

    def test_saturday_is_six(self) -> None:
        assert day_of_week(at(6, 12)) == 6

    def test_uses_instant_zone(self) -> None:
        """Late Saturday in New York is already Sunday in UTC."""
        ny = datetime(2026, 10, 24, 22, 0, tzinfo=ZoneInfo("America/New_York"))
        assert day_of_week(ny) == 6
        assert day_of_week(ny.astimezone(timezone.utc)) == 0


class TestIsAccessAllowed:
    def test_every_day_window(self) -> None:
        window = TimeWindow.parse("14:00", "14:30")
        assert is_access_allowed(at(2, 14, 15), [window])
        assert not is_access_allowed(at(2, 14, 31), [window])

    def test_day_specific_window(self) -> None:
        window = TimeWindow.parse("19:00", "21:00", day_of_week=6)
        tuesday, saturday = 2, 6
        assert not is_access_allowed(at(tuesday, 20), [window])
        assert is_access_allowed(at(saturday, 20), [window])

    def test_no_windows_blocks_always(self) -> None:
        for hour in (0, 6, 12, 18, 23):
            assert not is_access_allowed(at(3, hour), [])

    def test_bounds_are_inclusive(self) -> None:
        window = TimeWindow.parse("09:00", "17:00")
        assert is_access_allowed(at(1, 9), [window])
        assert is_access_allowed(at(1, 17), [window])
        assert not is_access_allowed(at(1, 8, 59, 59), [window])
        assert not is_access_allowed(at(1, 17, 0, 1), [window])

    def test_sub_second_past_end_still_inside(self) -> None:
        window = TimeWindow.parse("09:00", "17:00")
        now = at(1, 17) + timedelta(milliseconds=500)
        assert is_access_allowed(now, [window])

    def test_any_window_suffices(self) -> None:
        windows = [
            TimeWindow.parse("08:00", "09:00", day_of_week=1),
            TimeWindow.parse("12:00", "13:00"),
        ]
        assert is_access_allowed(at(1, 8, 30), windows)
        assert is_access_allowed(at(4, 12, 30), windows)
        assert not is_access_allowed(at(4, 8, 30), windows)

    def test_accepts_generator(self) -> None:
        windows = (TimeWindow.parse("00:00", "23:59:59") for _ in range(1))
        assert is_access_allowed(at(0, 10), windows)


class TestTimeWindowValidation:
    def test_start_must_precede_end(self) -> None:
        with pytest.raises(ValidationError):
            TimeWindow.parse("10:00", "10:00")
        with pytest.raises(ValidationError):
            TimeWindow.parse("22:00", "02:00")

    @pytest.mark.parametrize("day", [-1, 7, True])
    def test_day_out_of_range(self, day: int) -> None:
        with pytest.raises(ValidationError):
            TimeWindow.parse("10:00", "11:00", day_of_week=day)

    @pytest.mark.parametrize("value", ["25:00", "10:60", "noon", "10"])
    def test_bad_time_strings(self, value: str) -> None:
        with pytest.raises(ValidationError):
            TimeWindow.parse(value, "23:00")

    def test_seconds_accepted(self) -> None:
        window = TimeWindow.parse("14:00:00", "14:30:15")
        assert window.end == time(14, 30, 15)


class TestParseDay:
    @pytest.mark.parametrize("value,expected", [
        (None, None),
        ("", None),
        ("*", None),
        ("daily", None),
        ("sun", 0),
        ("Saturday", 6),
        ("3", 3),
        (5, 5),
    ])
    def test_known_values(self, value: object, expected: int | None) -> None:
        assert parse_day(value) == expected  # type: ignore[arg-type]

    def test_unknown_name(self) -> None:
        assert parse_day("someday") == -1
