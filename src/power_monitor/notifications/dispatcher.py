"""
NotificationDispatcher: fans an event out to every active channel.

Channels run concurrently. Each attempt has its own timeout and its own
error handling, so a slow or broken channel never blocks, cancels or fails
another. There is no retry at this layer.
"""

from __future__ import annotations

import asyncio
import logging
import time

from power_monitor.notifications.channel import ChannelResult, NotificationChannel
from power_monitor.notifications.channels.console import ConsoleChannel
from power_monitor.notifications.config import ChannelConfig, NotificationsConfig
from power_monitor.notifications.events import NotificationEvent
from power_monitor.notifications.validator import ChannelValidator

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Dispatches events to registered channels."""

    def __init__(
        self,
        validator: ChannelValidator | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.channels: list[NotificationChannel] = []
        self.validator = validator or ChannelValidator()
        self.timeout = timeout

    def register(self, channel: NotificationChannel) -> None:
        self.channels.append(channel)

    async def dispatch(self, event: NotificationEvent) -> list[ChannelResult]:
        """Fan-out event to all channels concurrently; one result per channel."""
        if not self.channels:
            logger.warning("No active channel for %s event", event.event_type.value)
            return []
        results = await asyncio.gather(
            *(self._safe_send(ch, event) for ch in self.channels)
        )
        delivered = sum(1 for r in results if r.ok)
        logger.info(
            "Dispatched %s to %d/%d channels",
            event.event_type.value,
            delivered,
            len(results),
        )
        return list(results)

    async def connect_all(self) -> None:
        """Connect all registered channels."""
        for ch in self.channels:
            try:
                await ch.connect()
            except Exception:
                logger.exception("Failed to connect channel %s", ch.name)

    async def disconnect_all(self) -> None:
        """Disconnect all registered channels."""
        for ch in self.channels:
            try:
                await ch.disconnect()
            except Exception:
                logger.exception("Failed to disconnect channel %s", ch.name)

    async def _deliver(self, channel: NotificationChannel, event: NotificationEvent) -> None:
        if channel.target_url:
            # DNS may have changed since startup
            await asyncio.to_thread(self.validator.check_url, channel.target_url)
        await channel.send(event)

    async def _safe_send(
        self, channel: NotificationChannel, event: NotificationEvent
    ) -> ChannelResult:
        """Send with error handling so one channel failure doesn't break others."""
        started = time.monotonic()
        try:
            await asyncio.wait_for(self._deliver(channel, event), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Channel %s timed out after %.1fs", channel.name, self.timeout
            )
            return ChannelResult(
                channel=channel.name,
                ok=False,
                error=f"timed out after {self.timeout:.1f}s",
                elapsed_seconds=time.monotonic() - started,
            )
        except Exception as exc:
            logger.warning(
                "Failed to send to channel %s: %s", channel.name, exc, exc_info=True
            )
            return ChannelResult(
                channel=channel.name,
                ok=False,
                error=str(exc) or type(exc).__name__,
                elapsed_seconds=time.monotonic() - started,
            )
        return ChannelResult(
            channel=channel.name,
            ok=True,
            elapsed_seconds=time.monotonic() - started,
        )


def build_channel(config: ChannelConfig, timeout: float = 15.0) -> NotificationChannel:
    """Construct the transport for one channel config, by tag."""
    if config.type == "console":
        return ConsoleChannel()
    elif config.type == "webhook":
        from power_monitor.notifications.channels.webhook import WebhookChannel

        return WebhookChannel(
            url=config.url,
            secret=config.secret,
            headers=dict(config.headers),
            timeout=timeout,
        )
    elif config.type == "telegram":
        from power_monitor.notifications.channels.telegram import TelegramChannel

        return TelegramChannel(
            token=config.bot_token, chat_id=config.chat_id, timeout=timeout
        )
    elif config.type == "pushover":
        from power_monitor.notifications.channels.pushover import PushoverChannel

        return PushoverChannel(
            api_token=config.api_token,
            user_key=config.user_key,
            priority=config.priority,
            retry_seconds=config.retry_seconds,
            expire_seconds=config.expire_seconds,
            sound=config.sound,
            device=config.device,
            timeout=timeout,
        )
    elif config.type == "ntfy":
        from power_monitor.notifications.channels.ntfy import NtfyChannel

        return NtfyChannel(
            topic_url=config.topic_url,
            token=config.token,
            priority=config.priority,
            tags=list(config.tags),
            click_action=config.click_action,
            icon=config.icon,
            markdown=config.markdown,
            actions=list(config.actions),
            timeout=timeout,
        )
    elif config.type == "email":
        from power_monitor.notifications.channels.email import EmailChannel

        return EmailChannel(
            smtp_host=config.smtp_host,
            smtp_port=config.smtp_port,
            username=config.username,
            password=config.password,
            from_addr=config.from_addr,
            to_addrs=list(config.to_addrs),
            encryption=config.encryption,
            timeout=timeout,
        )
    raise ValueError(f"unknown channel type {config.type!r}")


def build_dispatcher(
    notify: NotificationsConfig, validator: ChannelValidator | None = None
) -> NotificationDispatcher:
    """Build the dispatcher from the resolver's active channel list."""
    dispatcher = NotificationDispatcher(validator=validator, timeout=notify.timeout_seconds)
    if not notify.enabled:
        return dispatcher
    for ch_cfg in notify.channels:
        dispatcher.register(build_channel(ch_cfg, timeout=notify.timeout_seconds))
    return dispatcher
