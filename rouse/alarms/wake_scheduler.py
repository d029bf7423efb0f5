"""Reconcile platform wake requests against the alarm list."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from rouse.datetime_utils import local_now

from .models import Alarm, WakePayload
from .occurrence import is_never, next_occurrence
from .platform import PendingRequest, WakePlatform, WakeRequestError

LOGGER = logging.getLogger("rouse.wake")

REQUEST_PREFIX = "rouse-alarm-"


def request_id_for(alarm_id: str) -> str:
    return f"{REQUEST_PREFIX}{alarm_id}"


def alarm_id_for(request_id: str) -> str | None:
    """Inverse of :func:`request_id_for`; None for requests outside our namespace."""
    if not request_id.startswith(REQUEST_PREFIX):
        return None
    alarm_id = request_id[len(REQUEST_PREFIX) :]
    return alarm_id or None


@dataclass
class SyncReport:
    submitted: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.submitted or self.cancelled)

    @property
    def ok(self) -> bool:
        return not self.failed


class WakeScheduler:
    """Keeps exactly one wake request per enabled, schedulable alarm.

    ``sync`` is idempotent: running it twice against the same alarms and clock
    issues no platform calls the second time. The alarm-id to request map is a
    cache rebuilt on every sync.
    """

    def __init__(
        self,
        platform: WakePlatform,
        *,
        retry_delay: float = 10.0,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._platform = platform
        self._retry_delay = max(0.0, retry_delay)
        self._clock = clock
        self._requests: dict[str, PendingRequest] = {}

    def request_for(self, alarm_id: str) -> PendingRequest | None:
        return self._requests.get(alarm_id)

    async def owned_pending(self) -> list[PendingRequest]:
        """Pending platform requests in this app's namespace."""
        try:
            pending = await self._platform.list_pending()
        except (WakeRequestError, OSError) as exc:
            LOGGER.warning("[wake] Unable to list pending requests; using cached view: %s", exc)
            return list(self._requests.values())
        return [request for request in pending if alarm_id_for(request.request_id)]

    async def sync(self, alarms: Iterable[Alarm], now: datetime | None = None) -> SyncReport:
        reference = now or self._clock()
        report = SyncReport()
        owned = {alarm_id_for(request.request_id): request for request in await self.owned_pending()}

        desired: dict[str, tuple[datetime, WakePayload]] = {}
        for alarm in alarms:
            if not alarm.enabled:
                continue
            trigger = next_occurrence(alarm, reference)
            if is_never(trigger):
                continue
            desired[alarm.alarm_id] = (trigger, WakePayload.for_alarm(alarm))

        cache: dict[str, PendingRequest] = {}
        for alarm_id, request in owned.items():
            if alarm_id is None or alarm_id in desired:
                continue
            request_id = request.request_id
            if await self._attempt("cancel", request_id, lambda rid=request_id: self._platform.cancel(rid)):
                report.cancelled.append(alarm_id)
            else:
                report.failed.append(alarm_id)
                cache[alarm_id] = request

        for alarm_id, (trigger, payload) in desired.items():
            existing = owned.get(alarm_id)
            if existing and existing.trigger == trigger and existing.payload == payload:
                report.unchanged.append(alarm_id)
                cache[alarm_id] = existing
                continue
            request_id = request_id_for(alarm_id)
            submitted = await self._attempt(
                "submit",
                request_id,
                lambda rid=request_id, at=trigger, body=payload: self._platform.submit(rid, at, body),
            )
            if submitted:
                report.submitted.append(alarm_id)
                cache[alarm_id] = PendingRequest(request_id=request_id, trigger=trigger, payload=payload)
            else:
                report.failed.append(alarm_id)
                if existing:
                    cache[alarm_id] = existing

        self._requests = cache
        if report.changed or report.failed:
            LOGGER.info(
                "[wake] Sync: %d submitted, %d cancelled, %d unchanged, %d failed",
                len(report.submitted),
                len(report.cancelled),
                len(report.unchanged),
                len(report.failed),
            )
        return report

    async def cancel_for(self, alarm_id: str) -> bool:
        request_id = request_id_for(alarm_id)
        cancelled = await self._attempt("cancel", request_id, lambda: self._platform.cancel(request_id))
        if cancelled:
            self._requests.pop(alarm_id, None)
        return cancelled

    async def _attempt(self, operation: str, request_id: str, call: Callable[[], Awaitable[None]]) -> bool:
        for attempt in (1, 2):
            try:
                await call()
                return True
            except (WakeRequestError, OSError) as exc:
                if attempt == 1:
                    LOGGER.warning(
                        "[wake] %s %s failed (%s); retrying in %.0fs", operation, request_id, exc, self._retry_delay
                    )
                    await asyncio.sleep(self._retry_delay)
                else:
                    LOGGER.warning("[wake] %s %s failed again; deferring to next sync: %s", operation, request_id, exc)
        return False
