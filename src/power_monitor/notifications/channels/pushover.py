"""
Pushover channel: push notifications through the Pushover Messages API.

Escalated events go out at emergency priority (2). Pushover then re-delivers
every ``retry`` seconds until acknowledged or ``expire`` seconds pass; we
only supply those parameters and never loop ourselves.
"""

from __future__ import annotations

from typing import Any

from power_monitor.notifications.channel import ChannelTransportError, HttpChannel
from power_monitor.notifications.events import NotificationEvent

API_URL = "https://api.pushover.net/1/messages.json"
MAX_PRIORITY = 2


class PushoverChannel(HttpChannel):
    """Pushover notification channel."""

    name: str = "pushover"

    def __init__(
        self,
        api_token: str,
        user_key: str,
        *,
        priority: int = 0,
        retry_seconds: int = 60,
        expire_seconds: int = 3600,
        sound: str = "",
        device: str = "",
        timeout: float = 15.0,
    ) -> None:
        super().__init__(timeout=timeout)
        self.api_token = api_token
        self.user_key = user_key
        self.priority = priority
        self.retry_seconds = max(retry_seconds, 30)
        self.expire_seconds = min(max(expire_seconds, 30), 10800)
        self.sound = sound
        self.device = device

    def build_payload(self, event: NotificationEvent) -> dict[str, Any]:
        priority = MAX_PRIORITY if event.escalated else self.priority
        lines = [event.summary] + [f"{label}: {value}" for label, value in event.fields()]
        data: dict[str, Any] = {
            "token": self.api_token,
            "user": self.user_key,
            "title": event.title,
            "message": "\n".join(lines),
            "priority": priority,
        }
        if priority == MAX_PRIORITY:
            data["retry"] = self.retry_seconds
            data["expire"] = self.expire_seconds
        if self.sound:
            data["sound"] = self.sound
        if self.device:
            data["device"] = self.device
        return data

    async def send(self, event: NotificationEvent) -> None:
        resp = await self._post(API_URL, data=self.build_payload(event))
        body = resp.json()
        if body.get("status") != 1:
            errors = "; ".join(body.get("errors", []))
            raise ChannelTransportError(errors or "Pushover rejected the message")
