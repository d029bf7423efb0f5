"""Looping alarm tone and one-shot sound preview over the local audio sink."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import subprocess  # nosec B404 - only used for Popen typing
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

from rouse import audio as rouse_audio
from rouse.sound_library import SoundLibrary, SoundSettings

LOGGER = logging.getLogger("rouse.audio")

_MIN_RESTORE_VOLUME = 20
_TERMINATE_GRACE_SECONDS = 0.5
_POLL_SECONDS = 0.05


def _clamp_volume(value: int) -> int:
    return max(1, min(100, value))


class TonePlayer:
    """Single-session tone output.

    Starting any session (alarm loop or preview) stops whatever was playing
    first. Stopping kills the player process immediately rather than waiting
    for the current sample to finish.
    """

    def __init__(
        self,
        sound_library: SoundLibrary,
        sound_settings: SoundSettings,
        *,
        ramp_seconds: float = 30.0,
        gap_seconds: float = 0.8,
        preview_volume: int = 50,
    ) -> None:
        self._sound_library = sound_library
        self._sound_settings = sound_settings
        self._ramp_seconds = max(0.0, ramp_seconds)
        self._gap_seconds = max(0.05, gap_seconds)
        self._preview_volume = _clamp_volume(preview_volume)
        self._task: asyncio.Task | None = None
        self._process: subprocess.Popen[bytes] | None = None
        self._sink: str | None = None
        self._orig_volume: int | None = None
        self._session_kind: str | None = None

    @property
    def playing(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def session_kind(self) -> str | None:
        return self._session_kind if self.playing else None

    def _sound_path(self, sound_name: str | None) -> Path | None:
        return self._sound_library.resolve_with_default(sound_name, settings=self._sound_settings)

    async def play_looping_tone(self, sound_name: str) -> None:
        await self._start("alarm", self._tone_loop(sound_name))

    async def stop_tone(self) -> None:
        await self._stop_session()

    async def preview(self, sound_name: str) -> bool:
        path = await asyncio.to_thread(self._sound_path, sound_name)
        if path is None:
            LOGGER.warning("[audio] No playable file for sound %s", sound_name)
            return False
        await self._start("preview", self._preview_once(path))
        return True

    async def stop_preview(self) -> None:
        if self._session_kind == "preview":
            await self._stop_session()

    async def _start(self, kind: str, loop: Coroutine[Any, Any, None]) -> None:
        await self._stop_session()
        self._session_kind = kind
        self._task = asyncio.create_task(loop)

    async def _stop_session(self) -> None:
        task = self._task
        self._task = None
        self._session_kind = None
        if task and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._terminate_process()
        await self._restore_volume()

    async def _capture_volume(self) -> None:
        self._sink = await asyncio.to_thread(rouse_audio.find_audio_sink)
        if not self._sink:
            return
        current = await asyncio.to_thread(rouse_audio.get_current_volume, self._sink)
        # Never remember 0 as the volume to restore.
        self._orig_volume = current if current and current > 0 else _MIN_RESTORE_VOLUME

    async def _tone_loop(self, sound_name: str) -> None:
        loop = asyncio.get_running_loop()
        await self._capture_volume()
        start_volume = _clamp_volume((self._orig_volume or 50) // 2)
        ramp_start = loop.time()
        path = await asyncio.to_thread(self._sound_path, sound_name)
        if path is None:
            LOGGER.warning("[audio] Sound %s did not resolve; using the built-in tone", sound_name)
            path = await asyncio.to_thread(rouse_audio.ensure_alarm_sample)
        try:
            while True:
                if self._sink:
                    elapsed = loop.time() - ramp_start
                    if self._ramp_seconds and elapsed < self._ramp_seconds:
                        target = start_volume + int(elapsed / self._ramp_seconds * (100 - start_volume))
                    else:
                        target = 100
                    await asyncio.to_thread(rouse_audio.set_volume, target, self._sink)
                await self._play_once(path)
                await asyncio.sleep(self._gap_seconds)
        finally:
            await self._terminate_process()

    async def _preview_once(self, path: Path) -> None:
        await self._capture_volume()
        try:
            if self._sink:
                await asyncio.to_thread(rouse_audio.set_volume, self._preview_volume, self._sink)
            await self._play_once(path)
        finally:
            await self._terminate_process()
            await self._restore_volume()

    async def _play_once(self, path: Path | None) -> None:
        process = rouse_audio.spawn_sample(path)
        if process is None:
            LOGGER.debug("[audio] Unable to start player for %s", path)
            return
        self._process = process
        # A cancelled wait leaves the process in place for the caller's cleanup to kill.
        while process.poll() is None:
            await asyncio.sleep(_POLL_SECONDS)
        if self._process is process:
            self._process = None

    async def _terminate_process(self) -> None:
        process = self._process
        self._process = None
        if process is None or process.poll() is not None:
            return
        process.terminate()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + _TERMINATE_GRACE_SECONDS
        while process.poll() is None and loop.time() < deadline:
            await asyncio.sleep(_POLL_SECONDS)
        if process.poll() is None:
            LOGGER.debug("[audio] Player ignored terminate; killing it")
            process.kill()

    async def _restore_volume(self) -> None:
        sink, volume = self._sink, self._orig_volume
        self._sink = None
        self._orig_volume = None
        if sink is None or volume is None:
            return
        await asyncio.to_thread(rouse_audio.set_volume, max(_MIN_RESTORE_VOLUME, volume), sink)
