"""Lifecycle rules for check-ins and alerts.

Pure functions over stored fields and a clock reading. Services call these
before mutating a row; nothing here touches the database.
"""

from __future__ import annotations

from datetime import datetime

from safecircle.core import clock
from safecircle.core.errors import InvalidTransitionError
from safecircle.core.policies import MAX_PRIORITY, PRIORITY_BY_SEVERITY

# ---------- Check-ins ----------

CHECK_IN_ACTIVE = "active"
CHECK_IN_OVERDUE = "overdue"
CHECK_IN_COMPLETED = "completed"
CHECK_IN_CANCELLED = "cancelled"

CHECK_IN_STATUSES = (CHECK_IN_ACTIVE, CHECK_IN_COMPLETED, CHECK_IN_OVERDUE, CHECK_IN_CANCELLED)

CHECK_IN_TRANSITIONS: dict[str, frozenset[str]] = {
    CHECK_IN_ACTIVE: frozenset({CHECK_IN_COMPLETED, CHECK_IN_OVERDUE, CHECK_IN_CANCELLED}),
    CHECK_IN_OVERDUE: frozenset({CHECK_IN_COMPLETED, CHECK_IN_CANCELLED}),
    CHECK_IN_COMPLETED: frozenset(),
    CHECK_IN_CANCELLED: frozenset(),
}


def derive_check_in_status(status: str, expected_return_time: datetime, now: datetime | None = None) -> str:
    """Status a check-in has at ``now``: active past its deadline reads as overdue."""
    now = now or clock.utcnow()
    if status == CHECK_IN_ACTIVE and clock.as_utc(expected_return_time) < now:
        return CHECK_IN_OVERDUE
    return status


def ensure_check_in_transition(current: str, target: str) -> None:
    if target not in CHECK_IN_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(f"Cannot move check-in from {current} to {target}")


def completion_status(expected_return_time: datetime, completed_at: datetime) -> str:
    expected = clock.as_utc(expected_return_time)
    completed = clock.as_utc(completed_at)
    if expected > completed:
        return "early"
    if expected == completed:
        return "on-time"
    return "late"


# ---------- Alerts ----------

ALERT_ACTIVE = "active"
ALERT_ACKNOWLEDGED = "acknowledged"
ALERT_RESOLVED = "resolved"
ALERT_FALSE_ALARM = "false-alarm"
ALERT_CANCELLED = "cancelled"

ALERT_STATUSES = (ALERT_ACTIVE, ALERT_ACKNOWLEDGED, ALERT_RESOLVED, ALERT_FALSE_ALARM, ALERT_CANCELLED)
ALERT_OPEN_STATES = frozenset({ALERT_ACTIVE, ALERT_ACKNOWLEDGED})
ALERT_TERMINAL_STATES = frozenset({ALERT_RESOLVED, ALERT_FALSE_ALARM, ALERT_CANCELLED})

ALERT_TYPES = ("panic", "check-in-overdue", "sos", "location-sharing", "manual")
ALERT_SEVERITIES = ("low", "medium", "high", "critical")
ACK_RESPONSES = ("on-my-way", "contacted-authorities", "monitoring", "other")
RESOLUTION_STATUSES = ("safe", "help-arrived", "false-alarm", "other")


def ensure_alert_open(status: str, action: str) -> None:
    """Reject ``action`` once the alert has reached a terminal state."""
    if status == ALERT_RESOLVED:
        raise InvalidTransitionError(
            "Alert is already resolved" if action == "resolve" else f"Cannot {action} a resolved alert"
        )
    if status in ALERT_TERMINAL_STATES:
        raise InvalidTransitionError(f"Cannot {action} an alert that is {status}")


def status_after_acknowledgment(status: str) -> str:
    """Acknowledging promotes active to acknowledged and never regresses anything else."""
    if status == ALERT_ACTIVE:
        return ALERT_ACKNOWLEDGED
    return status


def default_priority(alert_type: str, severity: str) -> int:
    if alert_type == "panic":
        return MAX_PRIORITY
    return PRIORITY_BY_SEVERITY.get(severity, MAX_PRIORITY)


def is_escalation_due(
    status: str,
    enabled: bool,
    escalated: bool,
    created_at: datetime,
    escalate_after_minutes: int,
    now: datetime | None = None,
) -> bool:
    now = now or clock.utcnow()
    if status != ALERT_ACTIVE or not enabled or escalated:
        return False
    age = now - clock.as_utc(created_at)
    return age.total_seconds() >= escalate_after_minutes * 60
