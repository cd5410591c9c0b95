"""Lifecycle events and the narrow publishing interface services depend on."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Event names
ALERT_CREATED = "alert.created"
ALERT_ACKNOWLEDGED = "alert.acknowledged"
ALERT_RESOLVED = "alert.resolved"
ALERT_CANCELLED = "alert.cancelled"
ALERT_FALSE_ALARM = "alert.false_alarm"
ALERT_ESCALATED = "alert.escalated"
CHECKIN_CREATED = "checkin.created"
CHECKIN_COMPLETED = "checkin.completed"
CHECKIN_CANCELLED = "checkin.cancelled"
CHECKIN_OVERDUE = "checkin.overdue"
LOCATION_UPDATED = "location.updated"
PRESENCE_CHANGED = "presence.changed"


def circle_group(circle_id: int) -> str:
    return f"circle:{circle_id}"


def user_group(user_id: int) -> str:
    return f"user:{user_id}"


@dataclass(frozen=True)
class Event:
    """One fan-out message addressed to a broadcast group."""

    name: str
    group: str
    data: dict[str, Any] = field(default_factory=dict)
    # Connections of this user do not receive the event
    exclude_user: int | None = None


class EventBus:
    """Publishing side of the real-time channel.

    Services call ``publish`` only after their transition has been
    committed. Implementations must be safe to call from worker threads.
    """

    def publish(self, event: Event) -> None:
        raise NotImplementedError


class NullEventBus(EventBus):
    """Drops every event. Used by scripts and sweeps run without a channel."""

    def publish(self, event: Event) -> None:
        return None
