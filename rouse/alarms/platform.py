"""Collaborator contracts and the in-process wake platform.

The engine only talks to the outside world through the protocols below. The
daemon wires in :class:`AsyncioWakePlatform` for wake delivery; other hosts can
supply their own implementation of :class:`WakePlatform`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from rouse.datetime_utils import local_now

from .models import Alarm, WakePayload

LOGGER = logging.getLogger("rouse.wake")

WakeCallback = Callable[[dict[str, Any]], Awaitable[Any]]


class WakeRequestError(RuntimeError):
    """Raised by a wake platform when a submit or cancel did not go through."""


class AlertAction(str, Enum):
    OPEN = "open"
    SNOOZE = "snooze"
    STOP = "stop"


@dataclass(frozen=True)
class PendingRequest:
    request_id: str
    trigger: datetime
    payload: WakePayload


@dataclass
class FiringSession:
    """The alarm currently ringing and where the trigger came from."""

    alarm: Alarm
    source: str
    started_at: datetime

    @property
    def alarm_id(self) -> str:
        return self.alarm.alarm_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "alarm": self.alarm.to_public_dict(),
            "source": self.source,
            "started_at": self.started_at.isoformat(),
        }


class WakePlatform(Protocol):
    async def submit(self, request_id: str, trigger: datetime, payload: WakePayload) -> None: ...

    async def cancel(self, request_id: str) -> None: ...

    async def list_pending(self) -> list[PendingRequest]: ...


class AlertPresenter(Protocol):
    async def present(self, session: FiringSession) -> None: ...

    async def dismiss(self, alarm_id: str) -> None: ...


class ToneOutput(Protocol):
    async def play_looping_tone(self, sound_name: str) -> None: ...

    async def stop_tone(self) -> None: ...


class SoundPreviewer(Protocol):
    async def preview(self, sound_name: str) -> bool: ...

    async def stop_preview(self) -> None: ...


class AsyncioWakePlatform:
    """Deliver wake requests from sleeping asyncio tasks inside this process.

    Submitting an id that is already pending replaces it in place. A request is
    removed from the pending list just before its callback runs.
    """

    def __init__(
        self,
        *,
        on_wake: WakeCallback | None = None,
        clock: Callable[[], datetime] = local_now,
        max_sleep: float = 30.0,
    ) -> None:
        self._on_wake = on_wake
        self._clock = clock
        self._max_sleep = max(0.01, max_sleep)
        self._pending: dict[str, PendingRequest] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def set_wake_handler(self, callback: WakeCallback | None) -> None:
        self._on_wake = callback

    async def submit(self, request_id: str, trigger: datetime, payload: WakePayload) -> None:
        task = self._tasks.pop(request_id, None)
        if task:
            task.cancel()
        self._pending[request_id] = PendingRequest(request_id=request_id, trigger=trigger, payload=payload)
        try:
            self._tasks[request_id] = asyncio.create_task(self._wait_for_request(request_id))
        except RuntimeError as exc:
            self._pending.pop(request_id, None)
            raise WakeRequestError(f"unable to schedule {request_id}: {exc}") from exc

    async def cancel(self, request_id: str) -> None:
        self._pending.pop(request_id, None)
        task = self._tasks.pop(request_id, None)
        if task:
            task.cancel()

    async def list_pending(self) -> list[PendingRequest]:
        return list(self._pending.values())

    async def close(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        self._pending.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _wait_for_request(self, request_id: str) -> None:
        # Re-check the wall clock in short hops so a suspended host does not sleep past the trigger.
        while True:
            request = self._pending.get(request_id)
            if request is None:
                return
            delay = (request.trigger - self._clock()).total_seconds()
            if delay <= 0:
                break
            try:
                await asyncio.sleep(min(delay, self._max_sleep))
            except asyncio.CancelledError:
                return
        request = self._pending.pop(request_id, None)
        if self._tasks.get(request_id) is asyncio.current_task():
            self._tasks.pop(request_id, None)
        if request is None or self._on_wake is None:
            return
        LOGGER.info("[wake] Delivering %s (trigger %s)", request_id, request.trigger.isoformat())
        try:
            await self._on_wake(request.payload.to_dict())
        except Exception:
            LOGGER.exception("[wake] Wake handler failed for %s", request_id)
