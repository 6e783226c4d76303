"""
ntfy channel: publish to an ntfy topic URL.

The message body is the event summary; everything else travels in ntfy's
publish headers. Escalated events use priority 5 (max).
"""

from __future__ import annotations

from email.header import Header

from power_monitor.notifications.channel import HttpChannel
from power_monitor.notifications.events import NotificationEvent

MAX_PRIORITY = 5


class NtfyChannel(HttpChannel):
    """ntfy publish channel."""

    name: str = "ntfy"

    def __init__(
        self,
        topic_url: str,
        *,
        token: str = "",
        priority: int = 3,
        tags: list[str] | None = None,
        click_action: str = "",
        icon: str = "",
        markdown: bool = False,
        actions: list[str] | None = None,
        timeout: float = 15.0,
    ) -> None:
        super().__init__(timeout=timeout)
        self.topic_url = topic_url
        self.target_url = topic_url
        self.token = token
        self.priority = priority
        self.tags = tags or []
        self.click_action = click_action
        self.icon = icon
        self.markdown = markdown
        self.actions = actions or []

    def build_headers(self, event: NotificationEvent) -> dict[str, str]:
        priority = MAX_PRIORITY if event.escalated else self.priority
        headers = {
            # httpx sends ASCII headers; ntfy decodes RFC 2047 encoded words
            "Title": _header_safe(event.title),
            "Priority": str(priority),
        }
        if self.tags:
            headers["Tags"] = ",".join(self.tags)
        if self.click_action:
            headers["Click"] = self.click_action
        if self.icon:
            headers["Icon"] = self.icon
        if self.markdown:
            headers["Markdown"] = "yes"
        if self.actions:
            headers["Actions"] = "; ".join(self.actions)
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def build_body(self, event: NotificationEvent) -> str:
        lines = [event.summary]
        for label, value in event.fields():
            lines.append(f"**{label}:** {value}" if self.markdown else f"{label}: {value}")
        return "\n".join(lines)

    async def send(self, event: NotificationEvent) -> None:
        await self._post(
            self.topic_url,
            content=self.build_body(event).encode("utf-8"),
            headers=self.build_headers(event),
        )


def _header_safe(value: str) -> str:
    if value.isascii():
        return value
    return Header(value, "utf-8").encode()
