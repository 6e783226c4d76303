"""
NotificationChannel: abstract base class for all notification channels.

Each transport (console, webhook, Telegram, Pushover, ntfy, email) inherits
from this ABC and implements `send()`. Transport failures propagate out of
`send()`; the dispatcher records them per channel.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from power_monitor.notifications.events import NotificationEvent


class ChannelTransportError(Exception):
    """The provider refused or could not accept the message."""


class ChannelResult(BaseModel):
    """Outcome of one channel's delivery attempt."""

    channel: str
    ok: bool
    error: str = ""
    elapsed_seconds: float = 0.0


class NotificationChannel(ABC):
    """Base class for notification channels."""

    name: str = "unnamed"
    # Outbound URL re-checked against the SSRF guard before each send
    target_url: Optional[str] = None

    @abstractmethod
    async def send(self, event: NotificationEvent) -> None:
        """Send a notification event to this channel."""
        ...

    async def connect(self) -> None:
        """Open long-lived resources (HTTP client). No-op by default."""

    async def disconnect(self) -> None:
        """Tear down resources. No-op by default."""


class HttpChannel(NotificationChannel):
    """Channel that posts over HTTP with an optional long-lived client."""

    def __init__(self, timeout: float = 15.0) -> None:
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        self._client = httpx.AsyncClient(timeout=self.timeout)

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            resp = await client.post(url, **kwargs)
            resp.raise_for_status()
            return resp
        finally:
            if not self._client:
                await client.aclose()
