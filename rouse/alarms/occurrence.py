"""Next-occurrence calculation for alarms.

Pure functions of ``(alarm, now)``: nothing here reads the clock, touches the
store or talks to the platform. Calendar stepping happens on the local
wall-clock of ``now`` itself, so a daylight-saving transition between ``now``
and the returned instant shifts the result by the DST delta.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from .models import Alarm, Weekday

NEVER = datetime.max.replace(tzinfo=UTC)


def is_never(value: datetime) -> bool:
    return value == NEVER


def snooze_active(alarm: Alarm, now: datetime) -> bool:
    return alarm.snoozed_until is not None and alarm.snoozed_until > now


def snooze_expired(alarm: Alarm, now: datetime) -> bool:
    return alarm.snoozed_until is not None and alarm.snoozed_until <= now


def next_occurrence(alarm: Alarm, now: datetime) -> datetime:
    """Return the next instant ``alarm`` should fire after ``now``.

    A live snooze wins over the weekly schedule. Disabled alarms and alarms
    with no repeat days return :data:`NEVER`.
    """
    if not alarm.enabled:
        return NEVER
    if snooze_active(alarm, now):
        return alarm.snoozed_until  # type: ignore[return-value]
    if not alarm.days:
        return NEVER

    candidate = now.replace(hour=alarm.hour, minute=alarm.minute, second=0, microsecond=0)
    if candidate > now and Weekday.for_date(candidate.date()) in alarm.days:
        return candidate
    for offset in range(1, 8):
        attempt = candidate + timedelta(days=offset)
        if Weekday.for_date(attempt.date()) in alarm.days:
            return attempt
    # Unreachable with a non-empty closed weekday set.
    return NEVER


def sort_key(alarm: Alarm, now: datetime) -> tuple[datetime, str, str]:
    return next_occurrence(alarm, now), alarm.time_of_day, alarm.alarm_id


def format_countdown(target: datetime, now: datetime) -> str:
    """Human countdown text for a display tick, e.g. ``"Rings in 4m 10s"``."""
    if is_never(target):
        return ""
    total = int((target - now).total_seconds())
    if total < 0:
        return "Overdue"
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"Rings in {hours}h {minutes}m"
    if minutes:
        return f"Rings in {minutes}m {seconds}s"
    return f"Rings in {seconds}s"
