"""End-to-end AlarmService tests against a JSON file and the in-process wake platform."""

from __future__ import annotations

import asyncio
import tempfile
from datetime import datetime
from pathlib import Path
from unittest import IsolatedAsyncioTestCase

from rouse.alarms.models import WEEKDAY_SET, AlarmDraft
from rouse.alarms.platform import AsyncioWakePlatform
from rouse.alarms.service import AlarmService
from rouse.alarms.store import AlarmStore, JsonAlarmFile
from rouse.alarms.wake_scheduler import WakeScheduler

from conftest import FakePresenter, FakeTone


class AlarmServiceFileTests(IsolatedAsyncioTestCase):
    """Full wiring against a JSON file and the in-process wake platform."""

    async def asyncSetUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self._tmpdir.name) / "alarms.json"
        self.platform = AsyncioWakePlatform()
        self.tone = FakeTone()
        self.service = self._build()
        self.platform.set_wake_handler(self.service.handle_wake)
        await self.service.start()

    async def asyncTearDown(self) -> None:
        await self.service.stop()
        await self.platform.close()
        self._tmpdir.cleanup()

    def _build(self) -> AlarmService:
        return AlarmService(
            store=AlarmStore(JsonAlarmFile(self.path)),
            scheduler=WakeScheduler(self.platform, retry_delay=0),
            tone=self.tone,
            presenters=[FakePresenter()],
        )

    async def test_alarms_survive_restart(self) -> None:
        alarm = await self.service.create_alarm(AlarmDraft(time_of_day="07:00", days=WEEKDAY_SET, name="Work"))
        restarted = self._build()
        await restarted.start()
        self.assertEqual(restarted.get_alarm(alarm.alarm_id), alarm)
        pending = await self.platform.list_pending()
        self.assertEqual([request.payload.alarm_id for request in pending], [alarm.alarm_id])

    async def test_due_request_delivered_by_platform(self) -> None:
        alarm = await self.service.create_alarm()
        request_id = f"rouse-alarm-{alarm.alarm_id}"
        pending = {request.request_id: request for request in await self.platform.list_pending()}
        payload = pending[request_id].payload
        # Pull the trigger forward so delivery happens immediately.
        await self.platform.submit(request_id, datetime.now().astimezone(), payload)
        for _ in range(50):
            if self.service.firing.session is not None:
                break
            await asyncio.sleep(0.01)
        self.assertTrue(self.service.firing.is_firing(alarm.alarm_id))
        self.assertEqual(self.tone.playing, alarm.sound_name)
