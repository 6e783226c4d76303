"""
Telegram channel: outbound messages via the Bot API.
"""

from __future__ import annotations

from html import escape
from typing import Any

from power_monitor.notifications.channel import ChannelTransportError, HttpChannel
from power_monitor.notifications.events import EventSeverity, NotificationEvent

_BASE_URL = "https://api.telegram.org/bot{token}"

_SEVERITY_EMOJI = {
    EventSeverity.INFO: "\u2139\ufe0f",
    EventSeverity.WARNING: "\u26a0\ufe0f",
    EventSeverity.ERROR: "\u274c",
    EventSeverity.CRITICAL: "\U0001f6a8",
}


class TelegramChannel(HttpChannel):
    """Telegram notification channel using Bot API ``sendMessage``."""

    name: str = "telegram"

    def __init__(self, token: str, chat_id: str, *, timeout: float = 15.0) -> None:
        super().__init__(timeout=timeout)
        self.token = token
        self.chat_id = chat_id
        self._base_url = _BASE_URL.format(token=token)

    async def send(self, event: NotificationEvent) -> None:
        payload: dict[str, Any] = {
            "chat_id": self.chat_id,
            "text": self._format_message(event),
            "parse_mode": "HTML",
            # Routine reports arrive silently; alerts ring
            "disable_notification": not event.escalated and event.severity == EventSeverity.INFO,
        }
        resp = await self._post(f"{self._base_url}/sendMessage", json=payload)
        body = resp.json()
        if not body.get("ok", False):
            raise ChannelTransportError(body.get("description", "Telegram rejected the message"))

    def _format_message(self, event: NotificationEvent) -> str:
        emoji = _SEVERITY_EMOJI.get(event.severity, "\u2139\ufe0f")
        lines = [
            f"{emoji} <b>{escape(event.title)}</b>",
            "",
            escape(event.summary),
        ]
        for label, value in event.fields():
            lines.append(f"<i>{label}:</i> {escape(value)}")
        return "\n".join(lines)
