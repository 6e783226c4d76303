"""
HeartbeatMonitor: daily status report, independent of the poll loop.

Runs as its own asyncio task and wakes every ``check_interval`` seconds to
ask the alert state machine whether today's report is due. The check
compares the wall-clock hour, so an hour missed while the process was down
is simply skipped.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from power_monitor.notifications.alerts import AlertStateMachine
from power_monitor.notifications.channel import ChannelResult
from power_monitor.notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


class HeartbeatMonitor:
    """Evaluates the daily heartbeat condition on a fixed cadence."""

    def __init__(
        self,
        machine: AlertStateMachine,
        dispatcher: NotificationDispatcher,
        check_interval: float = 60,
    ) -> None:
        self.machine = machine
        self.dispatcher = dispatcher
        self.check_interval = check_interval

    @property
    def enabled(self) -> bool:
        cfg = self.machine.config
        return cfg.enabled and cfg.heartbeat_enabled

    async def run(self, stop: asyncio.Event) -> None:
        """Check until ``stop`` is set; a report in flight is allowed to finish."""
        if not self.enabled:
            return
        while not stop.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.check_interval)
            except asyncio.TimeoutError:
                pass

    async def tick(self, now: datetime | None = None) -> None:
        event = await self.machine.on_heartbeat_tick(now)
        if event is None:
            return
        logger.info("Sending daily heartbeat")
        try:
            results = await self.dispatcher.dispatch(event)
        except Exception as exc:
            logger.exception("Failed to send heartbeat")
            results = [ChannelResult(channel="dispatcher", ok=False, error=str(exc))]
        await self.machine.acknowledge(event, results)
