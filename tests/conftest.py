"""Shared fixtures and in-memory collaborators for the Rouse test suite.

- a settable clock
- an in-memory wake platform that records submits/cancels and can fail on demand
- tone output and alert presenters that record calls
- a memory-backed alarm persistence
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from unittest.mock import Mock

import httpx
import paho.mqtt.client as mqtt
import pytest

from rouse.alarms.config import HomeAssistantConfig, MqttConfig
from rouse.alarms.models import Alarm, WakePayload
from rouse.alarms.platform import FiringSession, PendingRequest, WakeRequestError
from rouse.alarms.service import AlarmService
from rouse.alarms.store import AlarmStore
from rouse.alarms.wake_scheduler import WakeScheduler

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ============================================================================
# Fakes
# ============================================================================


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeWakePlatform:
    """Pending requests held in a dict; ``fail_submits`` makes the next N submits raise."""

    def __init__(self) -> None:
        self.pending: dict[str, PendingRequest] = {}
        self.submits: list[PendingRequest] = []
        self.cancels: list[str] = []
        self.fail_submits = 0
        self.fail_cancels = 0
        self.fail_list = False

    async def submit(self, request_id: str, trigger: datetime, payload: WakePayload) -> None:
        if self.fail_submits:
            self.fail_submits -= 1
            raise WakeRequestError("submit refused")
        request = PendingRequest(request_id=request_id, trigger=trigger, payload=payload)
        self.submits.append(request)
        self.pending[request_id] = request

    async def cancel(self, request_id: str) -> None:
        if self.fail_cancels:
            self.fail_cancels -= 1
            raise WakeRequestError("cancel refused")
        self.cancels.append(request_id)
        self.pending.pop(request_id, None)

    async def list_pending(self) -> list[PendingRequest]:
        if self.fail_list:
            raise WakeRequestError("listing unavailable")
        return list(self.pending.values())

    def drop(self, request_id: str) -> None:
        """Simulate the host silently discarding a request."""
        self.pending.pop(request_id, None)

    def reset_calls(self) -> None:
        self.submits.clear()
        self.cancels.clear()


class FakeTone:
    def __init__(self, events: list[str] | None = None) -> None:
        self.events = events if events is not None else []
        self.playing: str | None = None
        self.previewed: list[str] = []

    async def play_looping_tone(self, sound_name: str) -> None:
        self.events.append(f"tone:{sound_name}")
        self.playing = sound_name

    async def stop_tone(self) -> None:
        self.events.append("tone:stop")
        self.playing = None

    async def preview(self, sound_name: str) -> bool:
        self.previewed.append(sound_name)
        return True

    async def stop_preview(self) -> None:
        self.events.append("preview:stop")


class FakePresenter:
    def __init__(self, events: list[str] | None = None) -> None:
        self.events = events if events is not None else []
        self.presented: list[FiringSession] = []
        self.dismissed: list[str] = []

    async def present(self, session: FiringSession) -> None:
        self.events.append(f"present:{session.alarm_id}")
        self.presented.append(session)

    async def dismiss(self, alarm_id: str) -> None:
        self.events.append(f"dismiss:{alarm_id}")
        self.dismissed.append(alarm_id)


class MemoryPersistence:
    def __init__(self, alarms: list[Alarm] | None = None) -> None:
        self.saved: list[list[dict[str, Any]]] = []
        self._initial = list(alarms or [])

    def load(self) -> list[Alarm]:
        return [alarm.copy() for alarm in self._initial]

    def save(self, alarms: list[Alarm]) -> None:
        self.saved.append([alarm.to_json_dict() for alarm in alarms])

    @property
    def last(self) -> list[dict[str, Any]]:
        return self.saved[-1] if self.saved else []


# ============================================================================
# Engine fixtures
# ============================================================================


@pytest.fixture
def monday_morning() -> datetime:
    """Monday 2025-01-13 06:00 local."""
    return datetime(2025, 1, 13, 6, 0, 0).astimezone()


@pytest.fixture
def clock(monday_morning):
    return FakeClock(monday_morning)


@pytest.fixture
def platform():
    return FakeWakePlatform()


@pytest.fixture
def events() -> list[str]:
    return []


@pytest.fixture
def tone(events):
    return FakeTone(events)


@pytest.fixture
def presenter(events):
    return FakePresenter(events)


@pytest.fixture
def persistence():
    return MemoryPersistence()


@pytest.fixture
def make_service(platform, tone, presenter, clock):
    """Factory for an AlarmService wired to the in-memory collaborators."""

    def _create(persistence: MemoryPersistence | None = None, **overrides: Any) -> AlarmService:
        store = AlarmStore(persistence or MemoryPersistence())
        options: dict[str, Any] = {
            "store": store,
            "scheduler": WakeScheduler(platform, retry_delay=0, clock=clock),
            "tone": tone,
            "presenters": [presenter],
            "previewer": tone,
            "clock": clock,
        }
        options.update(overrides)
        return AlarmService(**options)

    return _create


# ============================================================================
# Home Assistant / MQTT fixtures
# ============================================================================


@pytest.fixture
def ha_config():
    return HomeAssistantConfig(
        base_url="http://homeassistant.local:8123",
        token="test_token_123",
        verify_ssl=True,
        notify_service="mobile_app_phone",
    )


@pytest.fixture
def mock_ha_response():
    """Factory for mock Home Assistant responses."""

    def _create_response(
        status_code: int = 200,
        json_data: Any = None,
        text: str = "",
        content_type: str = "application/json",
    ) -> Mock:
        response = Mock(spec=httpx.Response)
        response.status_code = status_code
        response.json = Mock(return_value=json_data if json_data is not None else {})
        response.text = text
        response.headers = {"content-type": content_type}
        return response

    return _create_response


@pytest.fixture
def mqtt_config():
    return MqttConfig(
        host="localhost",
        port=1883,
        username=None,
        password=None,
        tls_enabled=False,
        cert=None,
        key=None,
        ca_cert=None,
        topic_base="rouse/bedroom",
    )


@pytest.fixture
def mock_mqtt_client():
    """Mock paho client matching the methods AlarmMqtt uses."""
    client = Mock(spec=mqtt.Client)
    client.subscribe = Mock(return_value=(mqtt.MQTT_ERR_SUCCESS, 1))
    client.is_connected = Mock(return_value=True)
    return client
