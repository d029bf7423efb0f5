"""Configuration helpers for the Rouse alarm daemon."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from pathlib import Path

from rouse.sound_library import DEFAULT_SOUND
from rouse.utils import parse_bool, parse_float, parse_int, sanitize_hostname_for_entity_id

_DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "rouse"


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(frozen=True)
class MqttConfig:
    host: str | None
    port: int
    username: str | None
    password: str | None
    tls_enabled: bool
    cert: str | None
    key: str | None
    ca_cert: str | None
    topic_base: str


@dataclass(frozen=True)
class HomeAssistantConfig:
    base_url: str | None
    token: str | None
    verify_ssl: bool
    notify_service: str | None

    @property
    def enabled(self) -> bool:
        return bool(self.base_url and self.token and self.notify_service)


@dataclass(frozen=True)
class AlarmConfig:
    hostname: str
    alarms_file: Path
    sounds_dir: Path
    default_sound: str
    wake_retry_seconds: float
    due_grace_seconds: float
    reconcile_seconds: float
    preview_volume: int
    mqtt: MqttConfig
    home_assistant: HomeAssistantConfig

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> AlarmConfig:
        source = os.environ if env is None else env
        hostname = source.get("ROUSE_HOSTNAME") or socket.gethostname()

        alarms_file = Path(source.get("ROUSE_ALARMS_FILE") or _DEFAULT_DATA_DIR / "alarms.json").expanduser()
        sounds_dir = Path(source.get("ROUSE_SOUNDS_DIR") or _DEFAULT_DATA_DIR / "sounds").expanduser()

        topic_base = source.get("ROUSE_TOPIC_BASE") or f"rouse/{sanitize_hostname_for_entity_id(hostname)}"
        mqtt = MqttConfig(
            host=_strip_or_none(source.get("MQTT_HOST")),
            port=parse_int(source.get("MQTT_PORT"), 1883),
            username=_strip_or_none(source.get("MQTT_USER") or source.get("MQTT_USERNAME")),
            password=_strip_or_none(source.get("MQTT_PASS") or source.get("MQTT_PASSWORD")),
            tls_enabled=parse_bool(source.get("MQTT_TLS_ENABLED"), False),
            cert=_strip_or_none(source.get("MQTT_CERT")),
            key=_strip_or_none(source.get("MQTT_KEY")),
            ca_cert=_strip_or_none(source.get("MQTT_CA_CERT")),
            topic_base=topic_base.rstrip("/"),
        )

        notify_service = _strip_or_none(source.get("ROUSE_HA_NOTIFY_SERVICE"))
        if notify_service and notify_service.startswith("notify."):
            notify_service = notify_service[len("notify.") :]
        home_assistant = HomeAssistantConfig(
            base_url=_strip_or_none(source.get("HOME_ASSISTANT_BASE_URL")),
            token=_strip_or_none(source.get("HOME_ASSISTANT_TOKEN") or source.get("HOME_ASSISTANT_LONG_LIVED_TOKEN")),
            verify_ssl=parse_bool(source.get("HOME_ASSISTANT_VERIFY_SSL"), True),
            notify_service=notify_service,
        )

        return AlarmConfig(
            hostname=hostname,
            alarms_file=alarms_file,
            sounds_dir=sounds_dir,
            default_sound=_strip_or_none(source.get("ROUSE_DEFAULT_SOUND")) or DEFAULT_SOUND,
            wake_retry_seconds=max(0.0, parse_float(source.get("ROUSE_WAKE_RETRY_SECONDS"), 10.0)),
            due_grace_seconds=max(1.0, parse_float(source.get("ROUSE_DUE_GRACE_SECONDS"), 60.0)),
            reconcile_seconds=max(5.0, parse_float(source.get("ROUSE_RECONCILE_SECONDS"), 60.0)),
            preview_volume=max(1, min(100, parse_int(source.get("ROUSE_PREVIEW_VOLUME"), 50))),
            mqtt=mqtt,
            home_assistant=home_assistant,
        )
