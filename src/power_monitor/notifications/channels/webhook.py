"""
Generic webhook channel: POST the event as JSON to any URL.

Supports HMAC signing and configurable headers. The event type travels in
the ``X-Event-Type`` header so receivers can route without parsing.
"""

from __future__ import annotations

import hashlib
import hmac
import json

from power_monitor.notifications.channel import HttpChannel
from power_monitor.notifications.events import NotificationEvent


class WebhookChannel(HttpChannel):
    """Generic webhook notification channel."""

    name: str = "webhook"

    def __init__(
        self,
        url: str,
        *,
        secret: str = "",
        headers: dict[str, str] | None = None,
        timeout: float = 15.0,
    ) -> None:
        super().__init__(timeout=timeout)
        self.url = url
        self.target_url = url
        self.secret = secret
        self.headers = headers or {}

    async def send(self, event: NotificationEvent) -> None:
        body = json.dumps(event.model_dump(mode="json"))

        send_headers: dict[str, str] = {
            "Content-Type": "application/json",
            "X-Event-Type": event.event_type.value,
            **self.headers,
        }
        if event.escalated:
            send_headers["X-Priority"] = "urgent"

        if self.secret:
            signature = hmac.new(
                self.secret.encode(),
                body.encode(),
                hashlib.sha256,
            ).hexdigest()
            send_headers["X-Power-Monitor-Signature"] = f"sha256={signature}"

        await self._post(self.url, content=body, headers=send_headers)
