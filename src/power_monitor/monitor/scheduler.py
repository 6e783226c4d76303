"""
Scheduler: drives polling, persistence and alerting.

Two independent asyncio tasks share one AlertStateMachine:

    poll loop       every ``interval_seconds``: session -> fetch -> save ->
                    alert decision -> dispatch
    heartbeat loop  every ``heartbeat_check_seconds``: daily report check

Blocking portal and database calls run in worker threads so a slow fetch
never delays the heartbeat. Persistence and alerting are decoupled: a
storage failure does not stop the alert and a dispatch failure does not
stop the save.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from power_monitor.core import AppConfig
from power_monitor.core.reading import Reading
from power_monitor.monitor.client import (
    FetchError,
    LoginError,
    PortalClient,
    PortalSession,
    SessionExpiredError,
)
from power_monitor.monitor.storage import ReadingStore, StorageError
from power_monitor.notifications.alerts import AlertStateMachine
from power_monitor.notifications.dispatcher import NotificationDispatcher
from power_monitor.notifications.events import NotificationEvent
from power_monitor.notifications.heartbeat import HeartbeatMonitor

logger = logging.getLogger(__name__)


class Scheduler:
    """Owns the poll cadence and the daily heartbeat."""

    def __init__(
        self,
        config: AppConfig,
        client: PortalClient,
        store: ReadingStore | None,
        machine: AlertStateMachine,
        dispatcher: NotificationDispatcher,
        *,
        heartbeat_check_seconds: float = 60,
    ) -> None:
        self.config = config
        self.client = client
        self.store = store
        self.machine = machine
        self.dispatcher = dispatcher
        self.heartbeat = HeartbeatMonitor(
            machine, dispatcher, check_interval=heartbeat_check_seconds
        )
        self._session: PortalSession | None = None

    async def run(self, stop: asyncio.Event) -> None:
        """Run both loops until ``stop`` is set.

        Stopping only prevents new ticks; an in-flight poll or dispatch is
        allowed to complete or time out.
        """
        await self.dispatcher.connect_all()
        try:
            await asyncio.gather(self._poll_loop(stop), self.heartbeat.run(stop))
        finally:
            await self.dispatcher.disconnect_all()

    async def _poll_loop(self, stop: asyncio.Event) -> None:
        interval = self.config.interval_seconds
        while not stop.is_set():
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Unexpected error in poll cycle")
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def poll_once(self) -> Reading | None:
        """One poll cycle. Returns the reading, or None if the cycle failed."""
        try:
            reading = await self._fetch()
        except LoginError as exc:
            logger.error("Login failed: %s", exc)
            await self._notify(await self.machine.on_login_error(exc))
            return None
        except FetchError as exc:
            logger.error("Fetch failed: %s", exc)
            await self._notify(await self.machine.on_fetch_error(exc))
            return None

        logger.info(
            "Room %s: %.2f CNY, %.2f kWh",
            reading.room_display_name,
            reading.remaining_money,
            reading.remaining_energy,
        )
        await self._save(reading)
        await self._notify(await self.machine.on_reading(reading))
        return reading

    async def heartbeat_once(self, now: datetime | None = None) -> None:
        await self.heartbeat.tick(now)

    async def _fetch(self) -> Reading:
        session = await self._ensure_session()
        try:
            return await asyncio.to_thread(self.client.fetch_balance, session)
        except SessionExpiredError as exc:
            logger.info("Session rejected (%s), logging in again", exc)
            self._session = None
            session = await self._ensure_session()
            try:
                return await asyncio.to_thread(self.client.fetch_balance, session)
            except SessionExpiredError as retry_exc:
                # A fresh session the portal still refuses needs a new login
                self._session = None
                raise LoginError(f"new session rejected: {retry_exc}") from retry_exc

    async def _ensure_session(self) -> PortalSession:
        if self._session is None:
            self._session = await asyncio.to_thread(self.client.login)
        return self._session

    async def _save(self, reading: Reading) -> None:
        if self.store is None:
            logger.debug("No storage configured, reading not saved")
            return
        try:
            await asyncio.to_thread(self.store.save, reading)
        except StorageError as exc:
            logger.error("Failed to save reading: %s", exc)

    async def _notify(self, event: NotificationEvent | None) -> None:
        if event is None:
            return
        results = await self.dispatcher.dispatch(event)
        await self.machine.acknowledge(event, results)
