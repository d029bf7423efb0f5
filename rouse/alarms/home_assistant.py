"""Home Assistant REST client and the actionable-notification alert surface."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import HomeAssistantConfig
from .platform import FiringSession

LOGGER = logging.getLogger("rouse.ha")

SNOOZE_ACTION = "ROUSE_SNOOZE"
STOP_ACTION = "ROUSE_STOP"


class HomeAssistantError(RuntimeError):
    """Generic Home Assistant API failure."""


class HomeAssistantAuthError(HomeAssistantError):
    """Raised when HA returns 401/403."""


@dataclass(slots=True)
class HomeAssistantClient:
    config: HomeAssistantConfig
    timeout: float = 10.0
    _client: httpx.AsyncClient = field(init=False, repr=False)
    _closed: bool = field(init=False, default=True, repr=False)

    def __post_init__(self) -> None:
        if not self.config.base_url:
            raise ValueError("Home Assistant base URL is not configured")
        if not self.config.token:
            raise ValueError("Home Assistant token is not configured")
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {self.config.token}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            verify=self.config.verify_ssl,
            trust_env=False,
        )
        self._closed = False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()

    async def get_info(self) -> dict[str, Any]:
        return await self._request("GET", "/api/")

    async def call_service(self, domain: str, service: str, data: dict[str, Any] | None = None) -> Any:
        return await self._request("POST", f"/api/services/{domain}/{service}", json=data or {})

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:  # pragma: no cover - network errors
            raise HomeAssistantError(f"Failed to contact Home Assistant: {exc}") from exc
        if response.status_code in (401, 403):
            raise HomeAssistantAuthError("Home Assistant rejected the token")
        if response.status_code >= 400:
            raise HomeAssistantError(f"Home Assistant error {response.status_code}: {response.text}")
        if response.headers.get("content-type", "").startswith("application/json"):
            return response.json()
        return response.text


def notification_tag(alarm_id: str) -> str:
    return f"rouse-alarm-{alarm_id}"


class HomeAssistantAlertPresenter:
    """Push an actionable notification to a phone via ``notify.<service>``.

    Button presses come back to the daemon through the MQTT command topic
    (an HA automation forwards ``mobile_app_notification_action`` events), so
    the action ids map onto the ``snooze``/``stop`` commands.
    """

    def __init__(self, client: HomeAssistantClient, notify_service: str, *, hostname: str = "") -> None:
        self._client = client
        self._notify_service = notify_service
        self._hostname = hostname

    async def present(self, session: FiringSession) -> None:
        alarm = session.alarm
        title = alarm.name or "Alarm"
        payload = {
            "title": title,
            "message": f"{title} is ringing ({alarm.time_of_day})",
            "data": {
                "tag": notification_tag(alarm.alarm_id),
                "persistent": True,
                "sticky": "true",
                "alarm_id": alarm.alarm_id,
                "sound_name": alarm.sound_name,
                "actions": [
                    {"action": SNOOZE_ACTION, "title": "Snooze"},
                    {"action": STOP_ACTION, "title": "Stop", "destructive": True},
                ],
            },
        }
        if self._hostname:
            payload["data"]["group"] = f"rouse-{self._hostname}"
        try:
            await self._client.call_service("notify", self._notify_service, payload)
        except HomeAssistantError as exc:
            LOGGER.warning("[ha] Failed to push alarm notification: %s", exc)

    async def dismiss(self, alarm_id: str) -> None:
        payload = {"message": "clear_notification", "data": {"tag": notification_tag(alarm_id)}}
        try:
            await self._client.call_service("notify", self._notify_service, payload)
        except HomeAssistantError as exc:
            LOGGER.debug("[ha] Failed to clear alarm notification: %s", exc)
