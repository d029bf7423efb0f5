#!/usr/bin/env python3
"""Rouse alarm clock daemon."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal

from rouse import systemd_notify
from rouse.alarms.alarm_commands import AlarmCommandProcessor, MqttAlertPresenter
from rouse.alarms.config import AlarmConfig
from rouse.alarms.home_assistant import HomeAssistantAlertPresenter, HomeAssistantClient, HomeAssistantError
from rouse.alarms.mqtt import AlarmMqtt
from rouse.alarms.platform import AlertPresenter, AsyncioWakePlatform
from rouse.alarms.service import AlarmService
from rouse.alarms.store import AlarmStore, JsonAlarmFile
from rouse.alarms.tone import TonePlayer
from rouse.alarms.wake_scheduler import WakeScheduler
from rouse.sound_library import SoundLibrary, SoundSettings

LOGGER = logging.getLogger("rouse-alarmd")


class AlarmDaemon:
    def __init__(self, config: AlarmConfig) -> None:
        self.config = config
        self.mqtt = AlarmMqtt(config.mqtt)
        self.platform = AsyncioWakePlatform()
        self.ha_client: HomeAssistantClient | None = None
        if config.home_assistant.enabled:
            try:
                self.ha_client = HomeAssistantClient(config.home_assistant)
            except ValueError as exc:
                LOGGER.warning("Home Assistant notifications disabled: %s", exc)

        sound_settings = SoundSettings.with_defaults(custom_dir=config.sounds_dir, default_alarm=config.default_sound)
        sound_library = SoundLibrary(custom_dir=sound_settings.custom_dir)
        sound_library.ensure_custom_dir()
        self.tone = TonePlayer(sound_library, sound_settings, preview_volume=config.preview_volume)

        presenters: list[AlertPresenter] = [MqttAlertPresenter(self.mqtt, config.mqtt.topic_base)]
        if self.ha_client and config.home_assistant.notify_service:
            presenters.append(
                HomeAssistantAlertPresenter(
                    self.ha_client,
                    config.home_assistant.notify_service,
                    hostname=config.hostname,
                )
            )

        self.service = AlarmService(
            store=AlarmStore(JsonAlarmFile(config.alarms_file)),
            scheduler=WakeScheduler(self.platform, retry_delay=config.wake_retry_seconds),
            tone=self.tone,
            presenters=presenters,
            previewer=self.tone,
            default_sound=config.default_sound,
            due_grace_seconds=config.due_grace_seconds,
        )
        self.platform.set_wake_handler(self.service.handle_wake)
        self.commands = AlarmCommandProcessor(self.service, self.mqtt, config.mqtt.topic_base)
        self.service.set_state_callback(self.commands.handle_state_changed)
        self._stop_event = asyncio.Event()

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        self.commands.set_event_loop(loop)
        if self.mqtt.connect():
            self.mqtt.subscribe(self.commands.command_topic, self.commands.handle_command_message)
        if self.ha_client:
            try:
                info = await self.ha_client.get_info()
                LOGGER.info("Connected to Home Assistant %s", info.get("version", "?"))
            except HomeAssistantError as exc:
                LOGGER.warning("Home Assistant check failed: %s", exc)
        await self.service.start()
        systemd_notify.ready(status=self._status_line())
        LOGGER.info("Alarm daemon running with %d alarm(s)", len(self.service.list_alarms()))
        while not self._stop_event.is_set():
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.reconcile_seconds)
            if self._stop_event.is_set():
                break
            await self.service.on_foreground()
            systemd_notify.watchdog()
            systemd_notify.status(self._status_line())

    async def shutdown(self) -> None:
        systemd_notify.stopping()
        self._stop_event.set()
        await self.service.stop()
        await self.platform.close()
        if self.ha_client:
            await self.ha_client.close()
        self.mqtt.disconnect()

    def _status_line(self) -> str:
        count = len(self.service.list_alarms())
        upcoming = self.service.next_alarm()
        if upcoming is None:
            return f"{count} alarm(s), none scheduled"
        return f"{count} alarm(s), next: {upcoming.name} at {upcoming.time_of_day}"


async def main() -> None:
    parser = argparse.ArgumentParser(description="Rouse alarm clock daemon")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = AlarmConfig.from_env()
    daemon = AlarmDaemon(config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    run_task = asyncio.create_task(daemon.run())
    await stop_event.wait()
    await daemon.shutdown()
    run_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await run_task


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
