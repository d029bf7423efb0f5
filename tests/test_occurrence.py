"""Tests for next-occurrence calculation (rouse/alarms/occurrence.py)."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from rouse.alarms.models import ALL_DAYS, WEEKDAY_SET, Alarm, Weekday
from rouse.alarms.occurrence import (
    NEVER,
    format_countdown,
    is_never,
    next_occurrence,
    snooze_active,
    snooze_expired,
    sort_key,
)

MWF = frozenset({Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY})


def local(*args: int) -> datetime:
    return datetime(*args).astimezone()


def make_alarm(time_of_day: str = "07:00", days=MWF, **kwargs) -> Alarm:
    return Alarm(alarm_id=kwargs.pop("alarm_id", "a1"), time_of_day=time_of_day, days=days, **kwargs)


class TestWeekdayTags:
    def test_for_date_maps_sunday_to_one(self):
        assert Weekday.for_date(local(2025, 1, 12).date()) is Weekday.SUNDAY
        assert Weekday.for_date(local(2025, 1, 13).date()) is Weekday.MONDAY
        assert Weekday.for_date(local(2025, 1, 18).date()) is Weekday.SATURDAY


class TestNextOccurrence:
    def test_tuesday_morning_rolls_to_wednesday(self):
        now = local(2025, 1, 14, 8, 0)
        assert next_occurrence(make_alarm(), now) == local(2025, 1, 15, 7, 0)

    def test_monday_before_time_fires_today(self):
        now = local(2025, 1, 13, 6, 30)
        assert next_occurrence(make_alarm(), now) == local(2025, 1, 13, 7, 0)

    def test_exactly_at_time_moves_to_next_matching_day(self):
        now = local(2025, 1, 13, 7, 0)
        assert next_occurrence(make_alarm(), now) == local(2025, 1, 15, 7, 0)

    def test_friday_evening_wraps_to_monday(self):
        now = local(2025, 1, 17, 21, 0)
        assert next_occurrence(make_alarm(), now) == local(2025, 1, 20, 7, 0)

    def test_single_day_after_time_waits_a_week(self):
        alarm = make_alarm(days=frozenset({Weekday.MONDAY}))
        now = local(2025, 1, 13, 7, 30)
        assert next_occurrence(alarm, now) == local(2025, 1, 20, 7, 0)

    def test_seconds_are_zeroed(self):
        now = local(2025, 1, 13, 6, 59, 59)
        result = next_occurrence(make_alarm(), now)
        assert result.second == 0
        assert result.microsecond == 0

    def test_empty_days_is_never(self):
        assert is_never(next_occurrence(make_alarm(days=frozenset()), local(2025, 1, 13, 6, 0)))

    def test_disabled_is_never(self):
        alarm = make_alarm(enabled=False)
        assert next_occurrence(alarm, local(2025, 1, 13, 6, 0)) == NEVER

    def test_disabled_with_future_snooze_is_never(self):
        now = local(2025, 1, 13, 7, 1)
        alarm = make_alarm(enabled=False, snoozed_until=now + timedelta(minutes=4))
        assert is_never(next_occurrence(alarm, now))

    @pytest.mark.parametrize("hour", [0, 6, 7, 12, 23])
    def test_result_never_precedes_now_and_lands_on_listed_day(self, hour):
        for day_offset in range(7):
            now = local(2025, 1, 12, hour, 15) + timedelta(days=day_offset)
            for days in (MWF, WEEKDAY_SET, frozenset({Weekday.SUNDAY}), ALL_DAYS):
                result = next_occurrence(make_alarm(days=days), now)
                assert result >= now
                assert Weekday.for_date(result.date()) in days


class TestSnoozeOverride:
    def test_future_snooze_wins_exactly(self):
        now = local(2025, 1, 13, 7, 0, 10)
        snoozed = local(2025, 1, 13, 7, 5, 10)
        alarm = make_alarm(snoozed_until=snoozed)
        assert next_occurrence(alarm, now) == snoozed

    def test_snooze_wins_even_with_no_days(self):
        now = local(2025, 1, 14, 9, 0)
        snoozed = now + timedelta(minutes=5)
        assert next_occurrence(make_alarm(days=frozenset(), snoozed_until=snoozed), now) == snoozed

    def test_spent_snooze_is_ignored(self):
        now = local(2025, 1, 13, 7, 10)
        alarm = make_alarm(snoozed_until=local(2025, 1, 13, 7, 5))
        assert next_occurrence(alarm, now) == local(2025, 1, 15, 7, 0)
        assert snooze_expired(alarm, now)
        assert not snooze_active(alarm, now)

    def test_snooze_equal_to_now_counts_as_expired(self):
        now = local(2025, 1, 13, 7, 5)
        alarm = make_alarm(snoozed_until=now)
        assert snooze_expired(alarm, now)
        assert not snooze_active(alarm, now)


class TestSortKey:
    def test_disabled_and_unscheduled_sort_last(self):
        now = local(2025, 1, 13, 6, 0)
        alarms = [
            make_alarm(alarm_id="off", time_of_day="06:30", enabled=False),
            make_alarm(alarm_id="none", time_of_day="05:00", days=frozenset()),
            make_alarm(alarm_id="later", time_of_day="09:00"),
            make_alarm(alarm_id="soon", time_of_day="06:30"),
        ]
        ordered = [alarm.alarm_id for alarm in sorted(alarms, key=lambda a: sort_key(a, now))]
        assert ordered[:2] == ["soon", "later"]
        assert set(ordered[2:]) == {"off", "none"}


class TestFormatCountdown:
    def test_seconds_only(self):
        now = local(2025, 1, 13, 6, 59, 15)
        assert format_countdown(local(2025, 1, 13, 7, 0), now) == "Rings in 45s"

    def test_minutes_and_seconds(self):
        now = local(2025, 1, 13, 6, 55, 50)
        assert format_countdown(local(2025, 1, 13, 7, 0), now) == "Rings in 4m 10s"

    def test_hours_and_minutes(self):
        now = local(2025, 1, 13, 4, 30)
        assert format_countdown(local(2025, 1, 13, 7, 0), now) == "Rings in 2h 30m"

    def test_beyond_a_day_stays_in_hours(self):
        now = local(2025, 1, 13, 6, 0)
        assert format_countdown(local(2025, 1, 15, 7, 5), now) == "Rings in 49h 5m"

    def test_overdue(self):
        now = local(2025, 1, 13, 7, 1)
        assert format_countdown(local(2025, 1, 13, 7, 0), now) == "Overdue"

    def test_never_is_blank(self):
        assert format_countdown(NEVER, local(2025, 1, 13, 7, 0)) == ""
