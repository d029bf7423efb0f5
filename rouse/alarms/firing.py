"""Firing state machine: ring, then stop or snooze."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from enum import Enum
from typing import Any

from rouse.datetime_utils import local_now
from rouse.sound_library import DEFAULT_SOUND

from .models import DEFAULT_NAME, Alarm, MalformedPayloadError, WakePayload
from .platform import AlertAction, AlertPresenter, FiringSession, ToneOutput

LOGGER = logging.getLogger("rouse.firing")

AlarmLookup = Callable[[str], Alarm | None]
AlarmCallback = Callable[[str], Awaitable[Any]]
SessionCallback = Callable[[FiringSession | None], None]


class FiringState(str, Enum):
    IDLE = "idle"
    FIRING = "firing"
    STOPPED = "stopped"
    SNOOZED = "snoozed"


class FiringController:
    """Drive one ringing alarm at a time.

    ``trigger`` moves Idle to Firing. ``stop`` and ``snooze`` always silence the
    tone before doing anything else, then hand the alarm id to the owner's
    callback. Only one stop/snooze runs at a time; a second one arriving while
    the first is in flight is dropped.
    """

    def __init__(
        self,
        *,
        tone: ToneOutput,
        lookup: AlarmLookup,
        on_stop: AlarmCallback,
        on_snooze: AlarmCallback,
        presenters: Sequence[AlertPresenter] = (),
        on_disabled: AlarmCallback | None = None,
        on_session_changed: SessionCallback | None = None,
        default_sound: str = DEFAULT_SOUND,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._tone = tone
        self._lookup = lookup
        self._on_stop = on_stop
        self._on_snooze = on_snooze
        self._presenters = list(presenters)
        self._on_disabled = on_disabled
        self._on_session_changed = on_session_changed
        self._default_sound = default_sound
        self._clock = clock
        self._state = FiringState.IDLE
        self._session: FiringSession | None = None
        self._action_in_flight = False

    @property
    def state(self) -> FiringState:
        return self._state

    @property
    def session(self) -> FiringSession | None:
        return self._session

    def is_firing(self, alarm_id: str | None = None) -> bool:
        if self._session is None:
            return False
        return alarm_id is None or self._session.alarm_id == alarm_id

    async def trigger(self, payload: WakePayload | dict[str, Any], source: str = "wake") -> bool:
        """Start ringing for ``payload``; returns False when nothing started."""
        wake = WakePayload.from_dict(payload)
        if self._session is not None:
            LOGGER.info(
                "[firing] Ignoring %s trigger for %s; %s is already ringing",
                source,
                wake.alarm_id,
                self._session.alarm_id,
            )
            return False
        alarm = self._lookup(wake.alarm_id)
        if alarm is None:
            LOGGER.warning("[firing] Wake for unknown alarm %s; ringing anyway", wake.alarm_id)
            alarm = Alarm(
                alarm_id=wake.alarm_id,
                time_of_day=self._clock().strftime("%H:%M"),
                sound_name=wake.sound_name or self._default_sound,
                name=DEFAULT_NAME,
            )
        elif not alarm.enabled:
            LOGGER.info("[firing] Alarm %s is disabled; not ringing", alarm.alarm_id)
            if self._on_disabled:
                await self._on_disabled(alarm.alarm_id)
            return False

        session = FiringSession(alarm=alarm, source=source, started_at=self._clock())
        self._session = session
        self._state = FiringState.FIRING
        LOGGER.info("[firing] Ringing %s (%s) via %s", alarm.alarm_id, alarm.name, source)
        try:
            await self._tone.play_looping_tone(alarm.sound_name or self._default_sound)
        except Exception:
            LOGGER.exception("[firing] Failed to start tone for %s", alarm.alarm_id)
        for presenter in self._presenters:
            try:
                await presenter.present(session)
            except Exception as exc:
                LOGGER.warning("[firing] Presenter %s failed: %s", type(presenter).__name__, exc)
        self._notify_session()
        return True

    async def stop(self, source: str = "user", alarm_id: str | None = None) -> bool:
        return await self._finish(FiringState.STOPPED, self._on_stop, source, alarm_id)

    async def snooze(self, source: str = "user", alarm_id: str | None = None) -> bool:
        return await self._finish(FiringState.SNOOZED, self._on_snooze, source, alarm_id)

    async def handle_action(
        self, action: AlertAction | str, payload: WakePayload | dict[str, Any] | None = None
    ) -> bool:
        """Route a notification action into the state machine.

        Stop and snooze are honoured even without an active session, in which
        case the alarm comes from ``payload``. An action naming a different
        alarm than the one ringing applies to that alarm only and leaves the
        current session ringing.
        """
        action = AlertAction(action)
        if action is AlertAction.OPEN:
            if payload is None:
                return False
            return await self.trigger(payload, source="notification")

        alarm_id = None
        if payload is not None:
            try:
                alarm_id = WakePayload.from_dict(payload).alarm_id
            except MalformedPayloadError:
                LOGGER.debug("[firing] Ignoring malformed action payload: %s", payload)
        if self._session is None or alarm_id in (None, self._session.alarm_id):
            await self._silence()
        if action is AlertAction.STOP:
            return await self.stop(source="notification", alarm_id=alarm_id)
        return await self.snooze(source="notification", alarm_id=alarm_id)

    async def cancel(self, alarm_id: str) -> bool:
        """Silence and forget the session for ``alarm_id`` without running callbacks."""
        if not self.is_firing(alarm_id):
            return False
        await self._silence()
        await self._dismiss(alarm_id)
        self._session = None
        self._state = FiringState.IDLE
        self._notify_session()
        return True

    async def _finish(
        self,
        outcome: FiringState,
        callback: AlarmCallback,
        source: str,
        alarm_id: str | None,
    ) -> bool:
        if self._action_in_flight:
            LOGGER.debug("[firing] Dropping %s from %s; another action is in progress", outcome.value, source)
            return False
        session = self._session
        if session is not None and alarm_id is not None and alarm_id != session.alarm_id:
            return await self._finish_other(outcome, callback, source, alarm_id)
        target = session.alarm_id if session else alarm_id
        if target is None:
            return False
        self._action_in_flight = True
        try:
            await self._silence()
            await self._dismiss(target)
            if session is not None:
                self._session = None
                self._state = outcome
                self._notify_session()
            LOGGER.info("[firing] %s %s via %s", outcome.value.title(), target, source)
            await callback(target)
            return True
        finally:
            if self._session is None:
                self._state = FiringState.IDLE
            self._action_in_flight = False

    async def _finish_other(
        self,
        outcome: FiringState,
        callback: AlarmCallback,
        source: str,
        alarm_id: str,
    ) -> bool:
        self._action_in_flight = True
        try:
            await self._dismiss(alarm_id)
            LOGGER.info(
                "[firing] %s %s via %s; %s keeps ringing",
                outcome.value.title(),
                alarm_id,
                source,
                self._session.alarm_id if self._session else None,
            )
            await callback(alarm_id)
            return True
        finally:
            self._action_in_flight = False

    async def _silence(self) -> None:
        try:
            await self._tone.stop_tone()
        except Exception:
            LOGGER.exception("[firing] Failed to stop tone")

    async def _dismiss(self, alarm_id: str) -> None:
        for presenter in self._presenters:
            try:
                await presenter.dismiss(alarm_id)
            except Exception as exc:
                LOGGER.warning("[firing] Presenter %s dismiss failed: %s", type(presenter).__name__, exc)

    def _notify_session(self) -> None:
        if self._on_session_changed:
            self._on_session_changed(self._session)
