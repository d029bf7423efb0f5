"""paho-mqtt connection used by the alarm daemon."""

from __future__ import annotations

import json
import logging
import ssl
import threading
from collections.abc import Callable
from typing import Any

import paho.mqtt.client as mqtt

from .config import MqttConfig

_ONLINE = "online"
_OFFLINE = "offline"


class AlarmMqtt:
    """Thin wrapper over a paho client; every method is a no-op without a broker."""

    def __init__(self, config: MqttConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self._logger = logger or logging.getLogger("rouse.mqtt")
        self._client: mqtt.Client | None = None
        self._lock = threading.Lock()
        self._subscriptions: dict[str, Callable[[str], None]] = {}

    @property
    def availability_topic(self) -> str:
        return f"{self.config.topic_base}/availability"

    def connect(self) -> bool:
        if not self.config.host:
            self._logger.info("[mqtt] MQTT host not configured; remote alarm control disabled")
            return False
        with self._lock:
            if self._client is not None:
                return True
            callback_kwargs: dict[str, object] = {}
            if hasattr(mqtt, "CallbackAPIVersion"):
                callback_kwargs["callback_api_version"] = mqtt.CallbackAPIVersion.VERSION2
            client = mqtt.Client(
                client_id=f"rouse-alarmd-{self.config.topic_base}",
                clean_session=True,
                **callback_kwargs,
            )
            if self.config.username:
                client.username_pw_set(self.config.username, self.config.password or "")
            if self.config.tls_enabled:
                tls_kwargs: dict[str, object] = {"tls_version": getattr(ssl, "PROTOCOL_TLS_CLIENT", ssl.PROTOCOL_TLS)}
                if self.config.ca_cert:
                    tls_kwargs["ca_certs"] = self.config.ca_cert
                if self.config.cert:
                    tls_kwargs["certfile"] = self.config.cert
                if self.config.key:
                    tls_kwargs["keyfile"] = self.config.key
                client.tls_set(**tls_kwargs)
            client.will_set(self.availability_topic, payload=_OFFLINE, qos=1, retain=True)
            client.on_connect = self._handle_connect
            try:
                client.connect(self.config.host, self.config.port, keepalive=30)
            except (OSError, ValueError) as exc:
                self._logger.warning("[mqtt] Failed to connect to %s:%s: %s", self.config.host, self.config.port, exc)
                return False
            client.loop_start()
            self._client = client
            return True

    def disconnect(self) -> None:
        with self._lock:
            client = self._client
            self._client = None
        if client:
            try:
                client.publish(self.availability_topic, payload=_OFFLINE, qos=1, retain=True)
            except (OSError, ValueError):
                self._logger.debug("[mqtt] Failed to publish offline status", exc_info=True)
            client.loop_stop()
            client.disconnect()

    def is_connected(self) -> bool:
        client = self._client
        try:
            return bool(client and client.is_connected())
        except Exception:
            return False

    def publish(self, topic: str, payload: str, retain: bool = False, qos: int = 0) -> None:
        client = self._client
        if not client:
            return
        try:
            client.publish(topic, payload=payload, qos=qos, retain=retain)
        except (OSError, ValueError) as exc:
            self._logger.debug("[mqtt] Failed to publish to %s: %s", topic, exc)

    def publish_json(self, topic: str, payload: Any, retain: bool = False) -> None:
        self.publish(topic, json.dumps(payload), retain=retain)

    def subscribe(self, topic: str, on_message: Callable[[str], None]) -> None:
        client = self._client
        if not client:
            raise RuntimeError("MQTT client is not connected")
        self._subscriptions[topic] = on_message

        def _callback(_client, _userdata, message):  # type: ignore[no-untyped-def]
            try:
                on_message(message.payload.decode("utf-8", errors="ignore"))
            except Exception as exc:
                self._logger.error("[mqtt] Handler for topic '%s' failed: %s", topic, exc, exc_info=True)

        result, _mid = client.subscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("[mqtt] Failed to subscribe to topic: %s (rc=%s)", topic, result)
        client.message_callback_add(topic, _callback)

    def _handle_connect(self, client, _userdata, _flags, reason_code, _properties=None):  # type: ignore[no-untyped-def]
        # Broker sessions are clean, so resubscribe after every reconnect.
        self._logger.info("[mqtt] Connected to %s (rc=%s)", self.config.host, reason_code)
        client.publish(self.availability_topic, payload=_ONLINE, qos=1, retain=True)
        for topic in self._subscriptions:
            client.subscribe(topic)
