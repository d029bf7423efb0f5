"""MQTT command surface for alarms.

Commands arrive as JSON on ``{base}/alarms/command`` with an ``action`` key and
are routed to :class:`~rouse.alarms.service.AlarmService`. The alarm list is
published retained on ``{base}/alarms/state``; the ringing alarm (or idle) on
``{base}/alarms/active``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

from .home_assistant import SNOOZE_ACTION, STOP_ACTION
from .models import AlarmDraft, AlarmSnapshot
from .platform import AlertAction, FiringSession

if TYPE_CHECKING:
    from .mqtt import AlarmMqtt
    from .service import AlarmService

LOGGER = logging.getLogger("rouse.mqtt")


def _alarm_id(payload: dict[str, Any]) -> str | None:
    for key in ("alarm_id", "id", "event_id"):
        value = payload.get(key)
        if value:
            return str(value).strip() or None
    return None


class AlarmCommandProcessor:
    """Parse MQTT alarm commands and dispatch them onto the service's event loop.

    Supported actions: create_alarm/add_alarm, update_alarm, delete_alarm,
    enable_alarm, disable_alarm, snooze, stop, cancel_snooze, preview_sound,
    stop_preview, open, next_alarm, refresh. Home Assistant notification
    action ids are accepted as snooze/stop.
    """

    def __init__(
        self,
        service: AlarmService,
        mqtt: AlarmMqtt,
        base_topic: str,
        logger: logging.Logger | None = None,
    ) -> None:
        self.service = service
        self.mqtt = mqtt
        self.logger = logger or LOGGER
        self._state_topic = f"{base_topic}/alarms/state"
        self._command_topic = f"{base_topic}/alarms/command"
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def command_topic(self) -> str:
        return self._command_topic

    @property
    def state_topic(self) -> str:
        return self._state_topic

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def handle_command_message(self, payload: str) -> None:
        """paho callback thread entry point."""
        if not self._loop:
            return
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            self.logger.debug("[mqtt] Ignoring malformed alarm command: %s", payload)
            return
        asyncio.run_coroutine_threadsafe(self.process_command(data), self._loop)

    def handle_state_changed(self, snapshot: AlarmSnapshot) -> None:
        self.mqtt.publish_json(self._state_topic, snapshot.to_dict(), retain=True)

    async def process_command(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            return
        action = str(payload.get("action") or "").strip().lower()
        if not action:
            return
        try:
            await self._dispatch_action(action, payload)
        except (ValueError, KeyError, TypeError) as exc:
            self.logger.warning("[mqtt] Alarm command %s rejected: %s", action, exc)

    async def _dispatch_action(self, action: str, payload: dict[str, Any]) -> None:
        if action in {"create_alarm", "add_alarm"}:
            await self.service.create_alarm(AlarmDraft.from_dict(payload))
        elif action == "update_alarm":
            await self.service.update_alarm(self._require_id(action, payload), AlarmDraft.from_dict(payload))
        elif action == "delete_alarm":
            await self.service.delete_alarm(self._require_id(action, payload))
        elif action in {"enable_alarm", "disable_alarm"}:
            await self.service.set_enabled(self._require_id(action, payload), action == "enable_alarm")
        elif action == "snooze":
            await self._snooze(payload)
        elif action == "stop":
            await self._stop(payload)
        elif action in {SNOOZE_ACTION.lower(), STOP_ACTION.lower()}:
            choice = AlertAction.SNOOZE if action == SNOOZE_ACTION.lower() else AlertAction.STOP
            alarm_id = _alarm_id(payload)
            await self.service.handle_action(choice, {"alarm_id": alarm_id} if alarm_id else None)
        elif action == "cancel_snooze":
            await self.service.cancel_snooze(self._require_id(action, payload))
        elif action == "preview_sound":
            sound = payload.get("sound_name") or payload.get("sound")
            if not sound:
                raise ValueError("sound_name is required")
            await self.service.preview_sound(str(sound))
        elif action == "stop_preview":
            await self.service.stop_preview()
        elif action == "open":
            await self.service.handle_action(AlertAction.OPEN, {"alarm_id": self._require_id(action, payload)})
        elif action == "next_alarm":
            self._publish_next_alarm()
        elif action == "refresh":
            await self.service.on_foreground()
            self.handle_state_changed(self.service.snapshot())
        else:
            self.logger.debug("[mqtt] Unknown alarm command: %s", action)

    async def _snooze(self, payload: dict[str, Any]) -> None:
        alarm_id = _alarm_id(payload)
        if alarm_id:
            await self.service.snooze_now(alarm_id)
        else:
            await self.service.handle_action(AlertAction.SNOOZE)

    async def _stop(self, payload: dict[str, Any]) -> None:
        alarm_id = _alarm_id(payload)
        if alarm_id:
            await self.service.stop_now(alarm_id)
        else:
            await self.service.handle_action(AlertAction.STOP)

    def _publish_next_alarm(self) -> None:
        snapshot = self.service.snapshot()
        self.mqtt.publish_json(f"{self._state_topic}/next_alarm", {"next_alarm": snapshot.next_alarm})

    @staticmethod
    def _require_id(action: str, payload: dict[str, Any]) -> str:
        alarm_id = _alarm_id(payload)
        if not alarm_id:
            raise ValueError(f"alarm_id is required for {action}")
        return alarm_id


class MqttAlertPresenter:
    """Publish the ringing alarm on ``{base}/alarms/active`` for kiosks and dashboards."""

    def __init__(self, mqtt: AlarmMqtt, base_topic: str) -> None:
        self.mqtt = mqtt
        self.topic = f"{base_topic}/alarms/active"

    async def present(self, session: FiringSession) -> None:
        message = {
            "state": "ringing",
            **session.to_dict(),
            "actions": [AlertAction.SNOOZE.value, AlertAction.STOP.value],
        }
        self.mqtt.publish_json(self.topic, message, retain=True)

    async def dismiss(self, alarm_id: str) -> None:
        self.mqtt.publish_json(self.topic, {"state": "idle", "alarm_id": alarm_id}, retain=True)
