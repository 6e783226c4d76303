"""
AlertStateMachine: decides whether a reading or failure becomes a notification.

Balance alerts move through three phases:

    idle      balance at or above threshold, nothing pending
    alerting  a LowBalance event was just emitted and is being dispatched
    cooldown  balance still low, a notification went out recently

Heartbeats fire at most once per calendar day at the configured hour.
Login and fetch failures bypass the phase logic entirely: every failure
produces its event when enabled, with no deduplication.

All transitions go through one asyncio.Lock, so the poll loop and the
heartbeat loop can share the instance.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from power_monitor.core.reading import Reading
from power_monitor.notifications import events
from power_monitor.notifications.channel import ChannelResult
from power_monitor.notifications.config import NotificationsConfig
from power_monitor.notifications.events import EventType, NotificationEvent

logger = logging.getLogger(__name__)


class AlertPhase(str, Enum):
    IDLE = "idle"
    ALERTING = "alerting"
    COOLDOWN = "cooldown"


class AlertState(BaseModel):
    """Mutable per-process alert state. Only AlertStateMachine writes it."""

    phase: AlertPhase = AlertPhase.IDLE
    last_balance: Optional[float] = None
    last_reading: Optional[Reading] = None
    last_low_balance_at: Optional[datetime] = None
    last_heartbeat_date: Optional[date] = None


class AlertStateMachine:
    """Threshold, cooldown and heartbeat decisions over a single AlertState."""

    def __init__(self, config: NotificationsConfig) -> None:
        self.config = config
        self.state = AlertState()
        self._lock = asyncio.Lock()
        # Day of a heartbeat that was emitted but not yet acknowledged
        self._pending_heartbeat: date | None = None

    @property
    def cooldown(self) -> timedelta:
        return timedelta(minutes=self.config.cooldown_minutes)

    async def on_reading(
        self, reading: Reading, now: datetime | None = None
    ) -> NotificationEvent | None:
        """Record a reading; return a LowBalance event if one should fire."""
        now = now or datetime.now().astimezone()
        async with self._lock:
            state = self.state
            state.last_reading = reading
            state.last_balance = reading.balance

            if reading.balance >= self.config.threshold:
                if state.phase != AlertPhase.IDLE:
                    logger.info(
                        "Balance %.2f back above threshold %.2f",
                        reading.balance,
                        self.config.threshold,
                    )
                state.phase = AlertPhase.IDLE
                return None

            due = (
                state.phase == AlertPhase.IDLE
                or state.last_low_balance_at is None
                or now - state.last_low_balance_at >= self.cooldown
            )
            if not due:
                state.phase = AlertPhase.COOLDOWN
                logger.debug(
                    "Low balance %.2f suppressed, last alert at %s",
                    reading.balance,
                    state.last_low_balance_at,
                )
                return None

            state.phase = AlertPhase.ALERTING
            state.last_low_balance_at = now
            if not self.config.enabled:
                return None
            logger.info(
                "Low balance %.2f < %.2f, alerting",
                reading.balance,
                self.config.threshold,
            )
            return events.low_balance(reading, self.config.threshold)

    async def acknowledge(
        self, event: NotificationEvent, results: Sequence[ChannelResult]
    ) -> None:
        """Settle a dispatched LowBalance or Heartbeat event.

        A LowBalance event with at least one delivered channel enters
        cooldown. If every channel failed, the recorded alert time is dropped
        so the next low reading tries again. A Heartbeat counts for the day
        only once a channel delivered it.

        An empty result list means no channel is active and settles the
        event as if delivered.
        """
        delivered = not results or any(r.ok for r in results)
        async with self._lock:
            if event.event_type == EventType.HEARTBEAT:
                pending, self._pending_heartbeat = self._pending_heartbeat, None
                if pending is None:
                    return
                if delivered:
                    self.state.last_heartbeat_date = pending
                else:
                    logger.warning("Heartbeat reached no channel, will retry")
                return
            if event.event_type != EventType.LOW_BALANCE:
                return
            if self.state.phase != AlertPhase.ALERTING:
                return
            if delivered:
                self.state.phase = AlertPhase.COOLDOWN
            else:
                logger.warning("Low balance alert reached no channel, will retry")
                self.state.last_low_balance_at = None

    async def on_heartbeat_tick(
        self, now: datetime | None = None
    ) -> NotificationEvent | None:
        """Return a Heartbeat event if today's report is due at this hour."""
        now = now or datetime.now().astimezone()
        async with self._lock:
            cfg = self.config
            if not (cfg.enabled and cfg.heartbeat_enabled):
                return None
            if now.hour != cfg.heartbeat_hour:
                return None
            today = now.date()
            if self.state.last_heartbeat_date == today:
                return None
            if self._pending_heartbeat == today:
                return None
            if self.state.last_reading is None:
                logger.info("Heartbeat due but no reading yet")
                return None
            self._pending_heartbeat = today
            return events.heartbeat(self.state.last_reading)

    async def on_login_error(self, error: BaseException) -> NotificationEvent | None:
        async with self._lock:
            if not (self.config.enabled and self.config.login_failure_enabled):
                return None
            return events.login_failure(error)

    async def on_fetch_error(self, error: BaseException) -> NotificationEvent | None:
        async with self._lock:
            if not (self.config.enabled and self.config.fetch_failure_enabled):
                return None
            return events.fetch_failure(error)
