"""Tests for the alert state machine: threshold, cooldown, heartbeat, failures."""

import asyncio
from datetime import datetime, timedelta

import pytest

from power_monitor.notifications.alerts import AlertPhase, AlertStateMachine
from power_monitor.notifications.channel import ChannelResult
from power_monitor.notifications.config import NotificationsConfig
from power_monitor.notifications.events import EventType

T0 = datetime(2026, 3, 1, 12, 0)


def _machine(**overrides) -> AlertStateMachine:
    settings = {"enabled": True, "threshold": 10.0, "cooldown_minutes": 60}
    settings.update(overrides)
    return AlertStateMachine(NotificationsConfig(**settings))


def _at(minutes: float) -> datetime:
    return T0 + timedelta(minutes=minutes)


class TestLowBalance:
    @pytest.mark.asyncio
    async def test_above_threshold_never_alerts(self, make_reading):
        machine = _machine()
        for i, money in enumerate([10.0, 50.0, 10.01, 999.0]):
            assert await machine.on_reading(make_reading(money), now=_at(i * 200)) is None
        assert machine.state.phase == AlertPhase.IDLE

    @pytest.mark.asyncio
    async def test_cooldown_scenario(self, make_reading):
        """threshold 10, cooldown 60: readings at 0, 10, 70 min alert at 0 and 70."""
        machine = _machine()
        fired = []
        for minute, money in [(0, 8.0), (10, 7.0), (70, 6.0)]:
            event = await machine.on_reading(make_reading(money), now=_at(minute))
            if event is not None:
                fired.append(minute)
        assert fired == [0, 70]

    @pytest.mark.asyncio
    async def test_burst_within_cooldown_alerts_once(self, make_reading):
        machine = _machine(cooldown_minutes=30)
        events = [
            await machine.on_reading(make_reading(5.0), now=_at(m))
            for m in range(0, 30, 3)
        ]
        assert sum(e is not None for e in events) == 1
        assert machine.state.phase == AlertPhase.COOLDOWN

    @pytest.mark.asyncio
    async def test_low_balance_event_is_escalated(self, make_reading):
        machine = _machine()
        event = await machine.on_reading(make_reading(3.5), now=T0)
        assert event.event_type == EventType.LOW_BALANCE
        assert event.escalated is True
        assert event.reading.remaining_money == 3.5
        assert "3.50 CNY" in event.summary

    @pytest.mark.asyncio
    async def test_recovery_resets_to_idle_and_realerts(self, make_reading):
        machine = _machine()
        assert await machine.on_reading(make_reading(5.0), now=_at(0)) is not None
        assert await machine.on_reading(make_reading(50.0), now=_at(5)) is None
        assert machine.state.phase == AlertPhase.IDLE
        # Dropping again is a fresh edge, cooldown does not apply
        assert await machine.on_reading(make_reading(4.0), now=_at(10)) is not None

    @pytest.mark.asyncio
    async def test_acknowledge_success_enters_cooldown(self, make_reading):
        machine = _machine()
        event = await machine.on_reading(make_reading(5.0), now=_at(0))
        assert machine.state.phase == AlertPhase.ALERTING
        await machine.acknowledge(event, [ChannelResult(channel="ntfy", ok=True)])
        assert machine.state.phase == AlertPhase.COOLDOWN
        assert await machine.on_reading(make_reading(5.0), now=_at(1)) is None

    @pytest.mark.asyncio
    async def test_acknowledge_total_failure_retries_next_reading(self, make_reading):
        machine = _machine()
        event = await machine.on_reading(make_reading(5.0), now=_at(0))
        await machine.acknowledge(event, [ChannelResult(channel="ntfy", ok=False, error="boom")])
        assert machine.state.last_low_balance_at is None
        assert await machine.on_reading(make_reading(5.0), now=_at(1)) is not None

    @pytest.mark.asyncio
    async def test_acknowledge_without_channels_settles_into_cooldown(self, make_reading):
        machine = _machine()
        event = await machine.on_reading(make_reading(5.0), now=_at(0))
        await machine.acknowledge(event, [])
        assert machine.state.phase == AlertPhase.COOLDOWN
        assert machine.state.last_low_balance_at == _at(0)
        assert await machine.on_reading(make_reading(5.0), now=_at(1)) is None

    @pytest.mark.asyncio
    async def test_disabled_tracks_state_but_emits_nothing(self, make_reading):
        machine = _machine(enabled=False)
        assert await machine.on_reading(make_reading(1.0), now=T0) is None
        assert machine.state.last_balance == 1.0

    @pytest.mark.asyncio
    async def test_concurrent_readings_alert_once(self, make_reading):
        machine = _machine()
        results = await asyncio.gather(*(
            machine.on_reading(make_reading(2.0), now=_at(0)) for _ in range(20)
        ))
        assert sum(r is not None for r in results) == 1


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_fires_once_per_day_at_hour(self, make_reading):
        machine = _machine(heartbeat_enabled=True, heartbeat_hour=8)
        await machine.on_reading(make_reading(20.0), now=datetime(2026, 3, 1, 7, 0))

        first = await machine.on_heartbeat_tick(now=datetime(2026, 3, 1, 8, 0))
        assert first is not None and first.event_type == EventType.HEARTBEAT
        await machine.acknowledge(first, [ChannelResult(channel="ntfy", ok=True)])
        assert machine.state.last_heartbeat_date == datetime(2026, 3, 1).date()

        second = await machine.on_heartbeat_tick(now=datetime(2026, 3, 1, 8, 30))
        assert second is None

        next_day = await machine.on_heartbeat_tick(now=datetime(2026, 3, 2, 8, 5))
        assert next_day is not None

    @pytest.mark.asyncio
    async def test_undelivered_heartbeat_retries_within_the_hour(self, make_reading):
        machine = _machine(heartbeat_enabled=True, heartbeat_hour=8)
        await machine.on_reading(make_reading(20.0), now=datetime(2026, 3, 1, 7, 0))

        first = await machine.on_heartbeat_tick(now=datetime(2026, 3, 1, 8, 0))
        # Not yet settled, so a second tick does not duplicate it
        assert await machine.on_heartbeat_tick(now=datetime(2026, 3, 1, 8, 0)) is None
        await machine.acknowledge(first, [ChannelResult(channel="ntfy", ok=False, error="503")])
        assert machine.state.last_heartbeat_date is None

        retry = await machine.on_heartbeat_tick(now=datetime(2026, 3, 1, 8, 1))
        assert retry is not None and retry.event_type == EventType.HEARTBEAT

    @pytest.mark.asyncio
    async def test_uses_latest_reading(self, make_reading):
        machine = _machine(heartbeat_enabled=True, heartbeat_hour=8)
        await machine.on_reading(make_reading(30.0), now=datetime(2026, 3, 1, 7, 0))
        await machine.on_reading(make_reading(25.0), now=datetime(2026, 3, 1, 7, 59))
        event = await machine.on_heartbeat_tick(now=datetime(2026, 3, 1, 8, 0))
        assert event.reading.remaining_money == 25.0
        assert event.escalated is False

    @pytest.mark.asyncio
    async def test_not_at_other_hours(self, make_reading):
        machine = _machine(heartbeat_enabled=True, heartbeat_hour=8)
        await machine.on_reading(make_reading(20.0), now=T0)
        assert await machine.on_heartbeat_tick(now=datetime(2026, 3, 1, 9, 0)) is None
        assert await machine.on_heartbeat_tick(now=datetime(2026, 3, 1, 7, 59)) is None

    @pytest.mark.asyncio
    async def test_needs_a_reading(self):
        machine = _machine(heartbeat_enabled=True, heartbeat_hour=8)
        assert await machine.on_heartbeat_tick(now=datetime(2026, 3, 1, 8, 0)) is None
        assert machine.state.last_heartbeat_date is None

    @pytest.mark.asyncio
    async def test_disabled(self, make_reading):
        machine = _machine(heartbeat_enabled=False, heartbeat_hour=8)
        await machine.on_reading(make_reading(20.0), now=T0)
        assert await machine.on_heartbeat_tick(now=datetime(2026, 3, 1, 8, 0)) is None


class TestFailures:
    @pytest.mark.asyncio
    async def test_login_failure_enabled_by_default(self):
        machine = _machine()
        event = await machine.on_login_error(RuntimeError("cookie file missing"))
        assert event.event_type == EventType.LOGIN_FAILURE
        assert event.error == "cookie file missing"

    @pytest.mark.asyncio
    async def test_login_failure_disabled(self):
        machine = _machine(login_failure_enabled=False)
        assert await machine.on_login_error(RuntimeError("x")) is None

    @pytest.mark.asyncio
    async def test_fetch_failure_off_by_default(self):
        machine = _machine()
        assert await machine.on_fetch_error(TimeoutError("slow")) is None

    @pytest.mark.asyncio
    async def test_fetch_failures_are_not_deduplicated(self):
        machine = _machine(fetch_failure_enabled=True)
        events = [await machine.on_fetch_error(TimeoutError("slow")) for _ in range(3)]
        assert all(e is not None for e in events)

    @pytest.mark.asyncio
    async def test_failures_do_not_touch_balance_phase(self, make_reading):
        machine = _machine(fetch_failure_enabled=True)
        await machine.on_reading(make_reading(5.0), now=_at(0))
        await machine.on_fetch_error(TimeoutError("slow"))
        assert machine.state.phase == AlertPhase.ALERTING
