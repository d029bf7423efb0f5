"""Alarm records, weekday tags and the typed wake payload."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import IntEnum
from typing import Any
from uuid import uuid4

from rouse.datetime_utils import deserialize_dt, format_time_of_day, parse_time_string, serialize_dt
from rouse.sound_library import DEFAULT_SOUND
from rouse.utils import parse_bool

SNOOZE_INTERVAL = timedelta(minutes=5)
DEFAULT_NAME = "Alarm"


class MalformedPayloadError(ValueError):
    """Raised when a wake payload does not carry a usable alarm reference."""


class Weekday(IntEnum):
    SUNDAY = 1
    MONDAY = 2
    TUESDAY = 3
    WEDNESDAY = 4
    THURSDAY = 5
    FRIDAY = 6
    SATURDAY = 7

    @classmethod
    def for_date(cls, value: date) -> Weekday:
        return cls(value.isoweekday() % 7 + 1)

    @property
    def short_name(self) -> str:
        return self.name[:3].title()


ALL_DAYS: frozenset[Weekday] = frozenset(Weekday)
WEEKDAY_SET: frozenset[Weekday] = frozenset(
    {Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY}
)
WEEKEND_SET: frozenset[Weekday] = frozenset({Weekday.SATURDAY, Weekday.SUNDAY})

DAY_NAME_MAP = {
    "sun": Weekday.SUNDAY,
    "sunday": Weekday.SUNDAY,
    "mon": Weekday.MONDAY,
    "monday": Weekday.MONDAY,
    "tue": Weekday.TUESDAY,
    "tues": Weekday.TUESDAY,
    "tuesday": Weekday.TUESDAY,
    "wed": Weekday.WEDNESDAY,
    "wednesday": Weekday.WEDNESDAY,
    "thu": Weekday.THURSDAY,
    "thur": Weekday.THURSDAY,
    "thurs": Weekday.THURSDAY,
    "thursday": Weekday.THURSDAY,
    "fri": Weekday.FRIDAY,
    "friday": Weekday.FRIDAY,
    "sat": Weekday.SATURDAY,
    "saturday": Weekday.SATURDAY,
}


def parse_day_tokens(value: str | None) -> frozenset[Weekday] | None:
    """Parse phrases like "weekdays", "mon,wed,fri" or "daily" into weekday tags.

    Returns None when nothing recognisable is present.
    """
    if not value:
        return None
    lowered = value.strip().lower()
    condensed = lowered.replace(" ", "")
    if lowered in {"weekdays", "weekday"}:
        return WEEKDAY_SET
    if lowered in {"weekend", "weekends"}:
        return WEEKEND_SET
    if condensed in {"everyday", "alldays"} or lowered in {"daily", "all"}:
        return ALL_DAYS
    if lowered in {"none", "never"}:
        return frozenset()
    days: set[Weekday] = set()
    for chunk in re.split(r"[,\s]+", lowered):
        chunk = chunk.strip()
        if not chunk:
            continue
        day = DAY_NAME_MAP.get(chunk, DAY_NAME_MAP.get(chunk[:3]))
        if day is None:
            continue
        days.add(day)
    if not days:
        return None
    return frozenset(days)


def coerce_enabled(raw: Any) -> bool:
    """Strings such as ``"false"`` or ``"off"`` from MQTT clients mean disabled."""
    if isinstance(raw, str):
        return parse_bool(raw)
    return bool(raw)


def coerce_days(raw: Any) -> frozenset[Weekday] | None:
    """Accept a day phrase, or an iterable of ints (1=Sunday..7=Saturday) and/or names."""
    if raw is None:
        return None
    if isinstance(raw, str):
        return parse_day_tokens(raw)
    if not isinstance(raw, Iterable):
        return None
    days: set[Weekday] = set()
    for item in raw:
        if isinstance(item, bool):
            continue
        if isinstance(item, Weekday):
            days.add(item)
        elif isinstance(item, (int, float)) and int(item) in range(1, 8):
            days.add(Weekday(int(item)))
        elif isinstance(item, str):
            parsed = parse_day_tokens(item)
            if parsed:
                days.update(parsed)
    return frozenset(days)


def normalize_time_of_day(value: str) -> str:
    hour, minute = parse_time_string(value)
    return format_time_of_day(hour, minute)


def days_label(days: Iterable[Weekday]) -> str:
    ordered = sorted(days)
    if not ordered:
        return "Never"
    if frozenset(ordered) == ALL_DAYS:
        return "Every day"
    if frozenset(ordered) == WEEKDAY_SET:
        return "Weekdays"
    if frozenset(ordered) == WEEKEND_SET:
        return "Weekends"
    return ", ".join(day.short_name for day in ordered)


@dataclass
class Alarm:
    alarm_id: str
    time_of_day: str
    enabled: bool = True
    sound_name: str = DEFAULT_SOUND
    days: frozenset[Weekday] = ALL_DAYS
    snoozed_until: datetime | None = None
    name: str = DEFAULT_NAME

    @property
    def hour(self) -> int:
        return parse_time_string(self.time_of_day)[0]

    @property
    def minute(self) -> int:
        return parse_time_string(self.time_of_day)[1]

    def copy(self) -> Alarm:
        return replace(self)

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "id": self.alarm_id,
            "time": self.time_of_day,
            "enabled": self.enabled,
            "sound_name": self.sound_name,
            "days": sorted(int(day) for day in self.days),
            "snoozed_until": serialize_dt(self.snoozed_until) if self.snoozed_until else None,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Alarm:
        alarm_id = payload["id"]
        if not isinstance(alarm_id, str) or not alarm_id:
            raise ValueError("alarm id must be a non-empty string")
        days = coerce_days(payload.get("days"))
        return cls(
            alarm_id=alarm_id,
            time_of_day=normalize_time_of_day(str(payload["time"])),
            enabled=coerce_enabled(payload.get("enabled", True)),
            sound_name=str(payload.get("sound_name") or DEFAULT_SOUND),
            days=ALL_DAYS if days is None else days,
            snoozed_until=deserialize_dt(payload.get("snoozed_until")),
            name=str(payload.get("name") or DEFAULT_NAME),
        )

    def to_public_dict(self) -> dict[str, Any]:
        data = self.to_json_dict()
        data["day_names"] = [day.short_name.lower() for day in sorted(self.days)]
        data["days_label"] = days_label(self.days)
        return data


@dataclass
class AlarmDraft:
    """Editable alarm fields; None leaves the current value untouched."""

    time_of_day: str | None = None
    days: frozenset[Weekday] | None = None
    sound_name: str | None = None
    name: str | None = None
    enabled: bool | None = None

    def apply_to(self, alarm: Alarm) -> Alarm:
        if self.time_of_day is not None:
            alarm.time_of_day = normalize_time_of_day(self.time_of_day)
        if self.days is not None:
            alarm.days = frozenset(self.days)
        if self.sound_name:
            alarm.sound_name = self.sound_name
        if self.name is not None:
            alarm.name = self.name.strip() or DEFAULT_NAME
        if self.enabled is not None:
            alarm.enabled = self.enabled
        return alarm

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> AlarmDraft:
        time_text = payload.get("time") or payload.get("time_of_day")
        enabled = payload.get("enabled")
        return cls(
            time_of_day=str(time_text) if time_text else None,
            days=coerce_days(payload.get("days")) if "days" in payload else None,
            sound_name=payload.get("sound_name") or payload.get("sound"),
            name=payload.get("name") or payload.get("label"),
            enabled=coerce_enabled(enabled) if enabled is not None else None,
        )


def new_alarm_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class WakePayload:
    alarm_id: str
    sound_name: str = DEFAULT_SOUND

    def to_dict(self) -> dict[str, str]:
        return {"alarm_id": self.alarm_id, "sound_name": self.sound_name}

    @classmethod
    def for_alarm(cls, alarm: Alarm) -> WakePayload:
        return cls(alarm_id=alarm.alarm_id, sound_name=alarm.sound_name)

    @classmethod
    def from_dict(cls, payload: Any) -> WakePayload:
        if isinstance(payload, WakePayload):
            return payload
        if not isinstance(payload, dict):
            raise MalformedPayloadError(f"wake payload must be a mapping, got {type(payload).__name__}")
        alarm_id = payload.get("alarm_id")
        if not isinstance(alarm_id, str) or not alarm_id.strip():
            raise MalformedPayloadError("wake payload is missing alarm_id")
        sound_name = payload.get("sound_name")
        if sound_name is not None and not isinstance(sound_name, str):
            raise MalformedPayloadError("wake payload sound_name must be a string")
        return cls(alarm_id=alarm_id.strip(), sound_name=sound_name or DEFAULT_SOUND)


@dataclass
class AlarmSnapshot:
    """Point-in-time view of the alarm list published to presentation surfaces."""

    alarms: list[dict[str, Any]] = field(default_factory=list)
    next_alarm: dict[str, Any] | None = None
    firing: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "alarms": self.alarms,
            "next_alarm": self.next_alarm,
            "firing": self.firing,
            "updated_at": self.updated_at,
        }
