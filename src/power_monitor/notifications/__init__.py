"""
Notification system for Power Monitor.

Turns readings and polling failures into low-balance, heartbeat and failure
events, and fans them out to the configured channels.
"""

from power_monitor.notifications.alerts import AlertPhase, AlertState, AlertStateMachine
from power_monitor.notifications.channel import ChannelResult, NotificationChannel
from power_monitor.notifications.config import ChannelConfig, NotificationsConfig
from power_monitor.notifications.dispatcher import NotificationDispatcher, build_dispatcher
from power_monitor.notifications.events import EventSeverity, EventType, NotificationEvent
from power_monitor.notifications.validator import ChannelValidator, ValidationResult, Verdict

__all__ = [
    "AlertPhase",
    "AlertState",
    "AlertStateMachine",
    "ChannelConfig",
    "ChannelResult",
    "ChannelValidator",
    "EventSeverity",
    "EventType",
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationEvent",
    "NotificationsConfig",
    "ValidationResult",
    "Verdict",
    "build_dispatcher",
]
