"""Canonical alarm list and its JSON persistence."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Protocol

from .models import Alarm

LOGGER = logging.getLogger("rouse.store")


class AlarmPersistence(Protocol):
    """Blocking load/save of the serialized alarm list."""

    def load(self) -> list[Alarm]: ...

    def save(self, alarms: list[Alarm]) -> None: ...


class JsonAlarmFile:
    """Alarm list stored as a JSON document; unreadable files load as an empty list."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> list[Alarm]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("[store] Failed to load alarms file %s: %s", self.path, exc)
            return []
        entries: Any = data.get("alarms") if isinstance(data, dict) else data
        if not isinstance(entries, list):
            LOGGER.warning("[store] Alarms file %s has no alarm list; treating as empty", self.path)
            return []
        alarms: list[Alarm] = []
        for item in entries:
            try:
                alarms.append(Alarm.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError):
                LOGGER.debug("[store] Skipping invalid alarm entry: %s", item, exc_info=True)
        return alarms

    def save(self, alarms: list[Alarm]) -> None:
        payload = {"alarms": [alarm.to_json_dict() for alarm in alarms]}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)


class AlarmStore:
    """Owns the in-memory alarm list; no scheduling logic lives here."""

    def __init__(self, persistence: AlarmPersistence) -> None:
        self._persistence = persistence
        self._alarms: dict[str, Alarm] = {}

    def __len__(self) -> int:
        return len(self._alarms)

    def __iter__(self) -> Iterator[Alarm]:
        return iter(list(self._alarms.values()))

    def __contains__(self, alarm_id: object) -> bool:
        return alarm_id in self._alarms

    def load(self) -> list[Alarm]:
        loaded = self._persistence.load()
        alarms: dict[str, Alarm] = {}
        for alarm in loaded:
            if alarm.alarm_id in alarms:
                LOGGER.warning("[store] Dropping duplicate alarm id %s", alarm.alarm_id)
                continue
            alarms[alarm.alarm_id] = alarm
        self._alarms = alarms
        LOGGER.debug("[store] Loaded %d alarm(s)", len(alarms))
        return self.alarms()

    def save(self) -> None:
        self._persistence.save(list(self._alarms.values()))

    def alarms(self) -> list[Alarm]:
        """Copies of every alarm, in insertion order."""
        return [alarm.copy() for alarm in self._alarms.values()]

    def get(self, alarm_id: str) -> Alarm | None:
        alarm = self._alarms.get(alarm_id)
        return alarm.copy() if alarm else None

    def add(self, alarm: Alarm) -> Alarm:
        if alarm.alarm_id in self._alarms:
            raise ValueError(f"alarm id {alarm.alarm_id} already exists")
        self._alarms[alarm.alarm_id] = alarm.copy()
        return alarm.copy()

    def put(self, alarm: Alarm) -> Alarm:
        if alarm.alarm_id not in self._alarms:
            raise KeyError(alarm.alarm_id)
        self._alarms[alarm.alarm_id] = alarm.copy()
        return alarm.copy()

    def remove(self, alarm_id: str) -> Alarm | None:
        return self._alarms.pop(alarm_id, None)
