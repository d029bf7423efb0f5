"""Tests for alarm persistence (rouse/alarms/store.py)."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

import pytest

from rouse.alarms.models import Alarm, Weekday
from rouse.alarms.store import AlarmStore, JsonAlarmFile


@pytest.fixture
def alarms_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "alarms.json"


def _alarm(alarm_id: str, time_of_day: str = "07:00", **kwargs) -> Alarm:
    return Alarm(alarm_id=alarm_id, time_of_day=time_of_day, **kwargs)


class TestJsonAlarmFile:
    def test_missing_file_is_empty(self, alarms_path):
        assert JsonAlarmFile(alarms_path).load() == []

    def test_save_then_load(self, alarms_path):
        snoozed = datetime(2025, 1, 13, 7, 5).astimezone()
        alarms = [
            _alarm("a", days=frozenset({Weekday.MONDAY}), snoozed_until=snoozed),
            _alarm("b", "21:30", enabled=False, name="Pills", days=frozenset()),
        ]
        storage = JsonAlarmFile(alarms_path)
        storage.save(alarms)
        assert storage.load() == alarms
        assert not alarms_path.with_suffix(".tmp").exists()

    def test_document_layout(self, alarms_path):
        JsonAlarmFile(alarms_path).save([_alarm("a")])
        document = json.loads(alarms_path.read_text(encoding="utf-8"))
        assert list(document) == ["alarms"]
        assert document["alarms"][0]["id"] == "a"

    def test_corrupt_file_is_empty(self, alarms_path, caplog):
        alarms_path.parent.mkdir(parents=True)
        alarms_path.write_text("{not json", encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="rouse.store"):
            assert JsonAlarmFile(alarms_path).load() == []
        assert "Failed to load alarms file" in caplog.text

    def test_wrong_shape_is_empty(self, alarms_path):
        alarms_path.parent.mkdir(parents=True)
        alarms_path.write_text(json.dumps({"alarms": "nope"}), encoding="utf-8")
        assert JsonAlarmFile(alarms_path).load() == []

    def test_bare_list_accepted(self, alarms_path):
        alarms_path.parent.mkdir(parents=True)
        alarms_path.write_text(json.dumps([{"id": "a", "time": "06:00"}]), encoding="utf-8")
        assert [alarm.alarm_id for alarm in JsonAlarmFile(alarms_path).load()] == ["a"]

    def test_bad_entries_skipped_individually(self, alarms_path):
        alarms_path.parent.mkdir(parents=True)
        entries = [{"id": "a", "time": "06:00"}, {"id": "b"}, "junk", {"id": "c", "time": "nonsense"}]
        alarms_path.write_text(json.dumps({"alarms": entries}), encoding="utf-8")
        assert [alarm.alarm_id for alarm in JsonAlarmFile(alarms_path).load()] == ["a"]


class TestAlarmStore:
    def test_duplicate_ids_first_wins(self, persistence, caplog):
        persistence._initial = [_alarm("a", "06:00"), _alarm("a", "09:00"), _alarm("b")]
        store = AlarmStore(persistence)
        with caplog.at_level(logging.WARNING, logger="rouse.store"):
            store.load()
        assert len(store) == 2
        assert store.get("a").time_of_day == "06:00"
        assert "duplicate alarm id a" in caplog.text

    def test_get_returns_copy(self, persistence):
        store = AlarmStore(persistence)
        store.add(_alarm("a"))
        fetched = store.get("a")
        fetched.enabled = False
        assert store.get("a").enabled is True

    def test_add_rejects_existing_id(self, persistence):
        store = AlarmStore(persistence)
        store.add(_alarm("a"))
        with pytest.raises(ValueError):
            store.add(_alarm("a"))

    def test_put_requires_existing(self, persistence):
        store = AlarmStore(persistence)
        with pytest.raises(KeyError):
            store.put(_alarm("missing"))

    def test_remove_and_save(self, persistence):
        store = AlarmStore(persistence)
        store.add(_alarm("a"))
        store.add(_alarm("b"))
        assert store.remove("a").alarm_id == "a"
        assert store.remove("a") is None
        store.save()
        assert [entry["id"] for entry in persistence.last] == ["b"]
        assert "a" not in store
