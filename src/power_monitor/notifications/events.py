"""
Notification events: the data flowing through the notification system.

Defines event types, severity levels, and the NotificationEvent model that
channels consume, plus constructors for the four events the alert state
machine emits.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from power_monitor.core.reading import Reading


class EventType(str, Enum):
    LOW_BALANCE = "low_balance"
    HEARTBEAT = "heartbeat"
    LOGIN_FAILURE = "login_failure"
    FETCH_FAILURE = "fetch_failure"


class EventSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class NotificationEvent(BaseModel):
    """A single notification event dispatched to channels."""

    model_config = ConfigDict(frozen=True)

    event_type: EventType
    severity: EventSeverity = EventSeverity.INFO
    title: str
    summary: str
    reading: Optional[Reading] = None
    error: str = ""
    escalated: bool = False  # send at each channel's maximum priority
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def fields(self) -> list[tuple[str, str]]:
        """Label/value pairs every channel renders in its own format."""
        pairs: list[tuple[str, str]] = []
        if self.reading is not None:
            r = self.reading
            pairs.append(("Room", r.room_display_name or r.meter_room_id))
            pairs.append(("Balance", f"{r.remaining_money:.2f} CNY"))
            pairs.append(("Energy", f"{r.remaining_energy:.2f} kWh"))
            pairs.append(("Time", r.captured_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")))
        if self.error:
            pairs.append(("Reason", self.error))
        return pairs


def low_balance(reading: Reading, threshold: float) -> NotificationEvent:
    return NotificationEvent(
        event_type=EventType.LOW_BALANCE,
        severity=EventSeverity.CRITICAL,
        title="Low electricity balance",
        summary=(
            f"Room {reading.room_display_name}: {reading.remaining_money:.2f} CNY "
            f"({reading.remaining_energy:.2f} kWh) left, "
            f"below the {threshold:.2f} CNY threshold"
        ),
        reading=reading,
        escalated=True,
    )


def heartbeat(reading: Reading) -> NotificationEvent:
    return NotificationEvent(
        event_type=EventType.HEARTBEAT,
        title="Daily electricity report",
        summary=(
            f"Room {reading.room_display_name}: {reading.remaining_money:.2f} CNY, "
            f"{reading.remaining_energy:.2f} kWh"
        ),
        reading=reading,
    )


def login_failure(error: BaseException | str) -> NotificationEvent:
    return NotificationEvent(
        event_type=EventType.LOGIN_FAILURE,
        severity=EventSeverity.ERROR,
        title="Portal login failed",
        summary=f"Could not log in to the electricity portal: {error}",
        error=str(error),
    )


def fetch_failure(error: BaseException | str) -> NotificationEvent:
    return NotificationEvent(
        event_type=EventType.FETCH_FAILURE,
        severity=EventSeverity.WARNING,
        title="Balance query failed",
        summary=f"Could not read the electricity balance: {error}",
        error=str(error),
    )
