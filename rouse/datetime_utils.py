"""Shared local wall-clock parsing and manipulation utilities."""

from __future__ import annotations

import re
from datetime import datetime

_TIME_KEYWORDS = {
    "noon": (12, 0),
    "midday": (12, 0),
    "midnight": (0, 0),
}


def local_now() -> datetime:
    """Get current datetime in local timezone."""
    return datetime.now().astimezone()


def serialize_dt(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.astimezone()
    return value.isoformat()


def deserialize_dt(value: str | None) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def parse_time_of_day(phrase: str | None) -> tuple[int, int] | None:
    """Parse time of day phrase into (hour, minute) tuple. Returns None if invalid."""
    if not phrase:
        return None
    cleaned = phrase.strip().lower()
    if not cleaned:
        return None
    keyword = _TIME_KEYWORDS.get(cleaned)
    if keyword:
        return keyword
    if cleaned.endswith(" o'clock"):
        cleaned = cleaned[: -len(" o'clock")].strip()
    match = re.match(r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)?$", cleaned)
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    suffix = match.group(3)
    if suffix:
        if hour > 12:
            return None
        if hour == 12:
            hour = 0
        if suffix == "pm":
            hour += 12
    if hour >= 24 or minute >= 60:
        return None
    return hour, minute


def parse_time_string(value: str) -> tuple[int, int]:
    """Parse time string into (hour, minute) tuple. Raises ValueError if invalid."""
    result = parse_time_of_day(value)
    if result is None:
        raise ValueError(f"Invalid time format: {value!r}")
    return result


def format_time_of_day(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"
