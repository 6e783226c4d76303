"""
Console channel: Rich output on the log stream.

The default channel when nothing else is configured. Writes to stderr so it
interleaves with log records; it never fails.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from power_monitor.notifications.channel import NotificationChannel
from power_monitor.notifications.events import (
    EventSeverity,
    EventType,
    NotificationEvent,
)

_SEVERITY_STYLE = {
    EventSeverity.INFO: "blue",
    EventSeverity.WARNING: "yellow",
    EventSeverity.ERROR: "red",
    EventSeverity.CRITICAL: "bold red",
}

_EVENT_EMOJI = {
    EventType.LOW_BALANCE: "\u26a0\ufe0f",     # warning
    EventType.HEARTBEAT: "\u2139\ufe0f",       # information
    EventType.LOGIN_FAILURE: "\U0001f512",     # lock
    EventType.FETCH_FAILURE: "\u274c",     # cross
}


class ConsoleChannel(NotificationChannel):
    """Rich terminal output channel."""

    name: str = "console"

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True)

    async def send(self, event: NotificationEvent) -> None:
        emoji = _EVENT_EMOJI.get(event.event_type, "\u2139\ufe0f")
        style = _SEVERITY_STYLE.get(event.severity, "blue")
        details = "  ".join(f"{label}: {value}" for label, value in event.fields())
        title = escape(event.title)
        summary = escape(event.summary)

        if event.escalated:
            body = summary if not details else f"{summary}\n{escape(details)}"
            self._console.print(
                Panel(body, title=f"{emoji} {title}", border_style=style)
            )
            return

        self._console.print(f"[{style}]{emoji} {title}[/{style}]  {summary}")
