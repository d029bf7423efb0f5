"""Alarm lifecycle API: the single writer for the alarm list."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import Any

from rouse.datetime_utils import local_now, serialize_dt
from rouse.sound_library import DEFAULT_SOUND

from .firing import FiringController
from .models import (
    DEFAULT_NAME,
    SNOOZE_INTERVAL,
    Alarm,
    AlarmDraft,
    AlarmSnapshot,
    MalformedPayloadError,
    WakePayload,
    new_alarm_id,
)
from .occurrence import format_countdown, is_never, next_occurrence, snooze_active, snooze_expired, sort_key
from .platform import AlertAction, AlertPresenter, FiringSession, SoundPreviewer, ToneOutput
from .store import AlarmStore
from .wake_scheduler import SyncReport, WakeScheduler

LOGGER = logging.getLogger("rouse.alarms")

StateCallback = Callable[[AlarmSnapshot], None]


class AlarmService:
    """Create, edit and fire alarms.

    Every mutation holds ``_lock`` while it writes the store and then runs a
    wake sync, so the platform never sees a half-applied change. Firing runs
    outside the lock; its stop/snooze callbacks come back in through it.
    """

    def __init__(
        self,
        *,
        store: AlarmStore,
        scheduler: WakeScheduler,
        tone: ToneOutput,
        presenters: Sequence[AlertPresenter] = (),
        previewer: SoundPreviewer | None = None,
        default_sound: str = DEFAULT_SOUND,
        due_grace_seconds: float = 60.0,
        clock: Callable[[], datetime] = local_now,
        on_state_changed: StateCallback | None = None,
        on_firing_changed: Callable[[FiringSession | None], None] | None = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._tone = tone
        self._previewer = previewer
        self._default_sound = default_sound
        self._due_grace = timedelta(seconds=max(0.0, due_grace_seconds))
        self._clock = clock
        self._state_cb = on_state_changed
        self._firing_cb = on_firing_changed
        self._lock = asyncio.Lock()
        self._started = False
        self._background: set[asyncio.Task] = set()
        self.firing = FiringController(
            tone=tone,
            lookup=self._store.get,
            on_stop=self._after_stop,
            on_snooze=self._after_snooze,
            presenters=presenters,
            on_disabled=self._after_disabled_wake,
            on_session_changed=self._session_changed,
            default_sound=default_sound,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def set_state_callback(self, callback: StateCallback | None) -> None:
        self._state_cb = callback

    async def start(self) -> None:
        if self._started:
            return
        async with self._lock:
            self._store.load()
        await self.on_foreground()
        self._started = True

    async def stop(self) -> None:
        session = self.firing.session
        if session:
            await self.firing.cancel(session.alarm_id)
        await self._tone.stop_tone()
        for task in list(self._background):
            task.cancel()
        self._background.clear()
        self._started = False

    async def on_foreground(self, now: datetime | None = None) -> SyncReport:
        """Reconcile: fire anything due, clear spent snoozes, then sync wake requests."""
        async with self._lock:
            reference = now or self._clock()
            due = await self._collect_due_locked(reference)
            expired = [alarm for alarm in self._store.alarms() if snooze_expired(alarm, reference)]
            for alarm in expired:
                alarm.snoozed_until = None
                self._store.put(alarm)
            if expired:
                LOGGER.debug("[alarms] Cleared %d expired snooze(s)", len(expired))
                self._persist_locked()
            report = await self._sync_locked(reference)
        for payload in due:
            await self.firing.trigger(payload, source="reconcile")
        return report

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_alarm(self, draft: AlarmDraft | None = None) -> Alarm:
        async with self._lock:
            now = self._clock()
            alarm = Alarm(
                alarm_id=new_alarm_id(),
                time_of_day=(now + timedelta(minutes=1)).strftime("%H:%M"),
                sound_name=self._default_sound,
                name=DEFAULT_NAME,
            )
            if draft:
                draft.apply_to(alarm)
            created = self._store.add(alarm)
            self._persist_locked()
            await self._sync_locked(now)
            LOGGER.info("[alarms] Created alarm %s at %s", created.alarm_id, created.time_of_day)
            return created

    async def update_alarm(self, alarm_id: str, draft: AlarmDraft) -> Alarm | None:
        async with self._lock:
            alarm = self._store.get(alarm_id)
            if alarm is None:
                return None
            before = (alarm.time_of_day, alarm.days)
            draft.apply_to(alarm)
            if (alarm.time_of_day, alarm.days) != before or not alarm.enabled:
                alarm.snoozed_until = None
            if not alarm.enabled:
                await self.firing.cancel(alarm_id)
            updated = self._store.put(alarm)
            self._persist_locked()
            if not updated.enabled:
                await self._scheduler.cancel_for(alarm_id)
            await self._sync_locked()
            return updated

    async def delete_alarm(self, alarm_id: str) -> bool:
        async with self._lock:
            if self._store.remove(alarm_id) is None:
                return False
            await self.firing.cancel(alarm_id)
            self._persist_locked()
            await self._scheduler.cancel_for(alarm_id)
            await self._sync_locked()
            LOGGER.info("[alarms] Deleted alarm %s", alarm_id)
            return True

    async def set_enabled(self, alarm_id: str, enabled: bool) -> Alarm | None:
        return await self.update_alarm(alarm_id, AlarmDraft(enabled=enabled))

    async def snooze_now(self, alarm_id: str) -> Alarm | None:
        if self.firing.is_firing(alarm_id):
            await self.firing.snooze(source="api", alarm_id=alarm_id)
            return self._store.get(alarm_id)
        async with self._lock:
            return await self._apply_snooze_locked(alarm_id)

    async def stop_now(self, alarm_id: str) -> Alarm | None:
        if self.firing.is_firing(alarm_id):
            await self.firing.stop(source="api", alarm_id=alarm_id)
            return self._store.get(alarm_id)
        async with self._lock:
            return await self._clear_snooze_locked(alarm_id)

    async def cancel_snooze(self, alarm_id: str) -> Alarm | None:
        async with self._lock:
            return await self._clear_snooze_locked(alarm_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_alarm(self, alarm_id: str) -> Alarm | None:
        return self._store.get(alarm_id)

    def list_alarms(self, now: datetime | None = None) -> list[Alarm]:
        """Alarms ordered by next occurrence; disabled and unschedulable ones last."""
        reference = now or self._clock()
        return sorted(self._store.alarms(), key=lambda alarm: sort_key(alarm, reference))

    def next_alarm(self, now: datetime | None = None) -> Alarm | None:
        reference = now or self._clock()
        for alarm in self.list_alarms(reference):
            if not is_never(next_occurrence(alarm, reference)):
                return alarm
        return None

    def snapshot(self, now: datetime | None = None) -> AlarmSnapshot:
        reference = now or self._clock()
        alarms = [self._describe(alarm, reference) for alarm in self.list_alarms(reference)]
        upcoming = self.next_alarm(reference)
        session = self.firing.session
        return AlarmSnapshot(
            alarms=alarms,
            next_alarm=self._describe(upcoming, reference) if upcoming else None,
            firing=session.alarm_id if session else None,
            updated_at=serialize_dt(reference),
        )

    # ------------------------------------------------------------------
    # Collaborator entry points
    # ------------------------------------------------------------------

    async def handle_wake(self, payload: dict[str, Any]) -> bool:
        """Platform wake callback."""
        try:
            wake = WakePayload.from_dict(payload)
        except MalformedPayloadError as exc:
            LOGGER.warning("[alarms] Dropping wake with bad payload %r: %s", payload, exc)
            return False
        started = await self.firing.trigger(wake, source="wake")
        async with self._lock:
            await self._sync_locked()
        return started

    async def handle_action(self, action: AlertAction | str, payload: dict[str, Any] | None = None) -> bool:
        try:
            return await self.firing.handle_action(action, payload)
        except (ValueError, MalformedPayloadError) as exc:
            LOGGER.warning("[alarms] Ignoring alert action %r: %s", action, exc)
            return False

    async def preview_sound(self, sound_name: str) -> bool:
        if self._previewer is None:
            return False
        if self.firing.session is not None:
            LOGGER.info("[alarms] Not previewing %s while an alarm is ringing", sound_name)
            return False
        return await self._previewer.preview(sound_name)

    async def stop_preview(self) -> None:
        if self._previewer is not None:
            await self._previewer.stop_preview()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _collect_due_locked(self, now: datetime) -> list[WakePayload]:
        window_start = now - self._due_grace
        due: dict[str, WakePayload] = {}
        for request in await self._scheduler.owned_pending():
            if window_start < request.trigger <= now:
                due[request.payload.alarm_id] = request.payload
        for alarm in self._store.alarms():
            if not alarm.enabled or alarm.snoozed_until is None:
                continue
            if window_start < alarm.snoozed_until <= now:
                due.setdefault(alarm.alarm_id, WakePayload.for_alarm(alarm))
        if due:
            LOGGER.info("[alarms] Catching up %d missed wake(s): %s", len(due), ", ".join(due))
        return list(due.values())

    async def _apply_snooze_locked(self, alarm_id: str) -> Alarm | None:
        alarm = self._store.get(alarm_id)
        if alarm is None:
            return None
        now = self._clock()
        alarm.snoozed_until = now + SNOOZE_INTERVAL
        snoozed = self._store.put(alarm)
        self._persist_locked()
        await self._sync_locked(now)
        LOGGER.info("[alarms] Snoozed %s until %s", alarm_id, serialize_dt(alarm.snoozed_until))
        return snoozed

    async def _clear_snooze_locked(self, alarm_id: str) -> Alarm | None:
        alarm = self._store.get(alarm_id)
        if alarm is None:
            return None
        if alarm.snoozed_until is not None:
            alarm.snoozed_until = None
            alarm = self._store.put(alarm)
            self._persist_locked()
        await self._sync_locked()
        return alarm

    async def _after_stop(self, alarm_id: str) -> None:
        async with self._lock:
            if await self._clear_snooze_locked(alarm_id) is None:
                await self._sync_locked()

    async def _after_snooze(self, alarm_id: str) -> None:
        async with self._lock:
            if await self._apply_snooze_locked(alarm_id) is None:
                LOGGER.info("[alarms] Snoozed alarm %s is not stored; nothing to reschedule", alarm_id)
                await self._sync_locked()

    async def _after_disabled_wake(self, _alarm_id: str) -> None:
        # Called from inside on_foreground as well, so the sync must not wait on the lock here.
        task = asyncio.create_task(self._resync())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _resync(self) -> None:
        async with self._lock:
            await self._sync_locked()

    async def _sync_locked(self, now: datetime | None = None) -> SyncReport:
        report = await self._scheduler.sync(self._store.alarms(), now or self._clock())
        self._publish_state()
        return report

    def _persist_locked(self) -> None:
        try:
            self._store.save()
        except OSError as exc:
            LOGGER.error("[alarms] Failed to save alarms: %s", exc)

    def _describe(self, alarm: Alarm, now: datetime) -> dict[str, Any]:
        data = alarm.to_public_dict()
        occurrence = next_occurrence(alarm, now)
        data["next_occurrence"] = None if is_never(occurrence) else serialize_dt(occurrence)
        data["countdown"] = format_countdown(occurrence, now)
        if self.firing.is_firing(alarm.alarm_id):
            data["status"] = "ringing"
        elif not alarm.enabled:
            data["status"] = "disabled"
        elif snooze_active(alarm, now):
            data["status"] = "snoozed"
        elif is_never(occurrence):
            data["status"] = "unscheduled"
        else:
            data["status"] = "scheduled"
        return data

    def _publish_state(self) -> None:
        if not self._state_cb:
            return
        try:
            self._state_cb(self.snapshot())
        except Exception:
            LOGGER.exception("[alarms] State callback failed")

    def _session_changed(self, session: FiringSession | None) -> None:
        if self._firing_cb:
            self._firing_cb(session)
        self._publish_state()
