"""Alert schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field, field_validator

from safecircle.core.policies import (
    ALERT_ACK_NOTES_MAX,
    ALERT_MESSAGE_MAX,
    ALERT_TITLE_MAX,
    DEFAULT_ESCALATE_AFTER_MIN,
    MAX_ESCALATE_AFTER_MIN,
    MAX_PRIORITY,
    MIN_ESCALATE_AFTER_MIN,
    RESOLUTION_NOTES_MAX,
)
from safecircle.schemas.common import CamelModel, Location, UserIdentity

AlertType = Literal["panic", "check-in-overdue", "sos", "location-sharing", "manual"]
Severity = Literal["low", "medium", "high", "critical"]
AlertStatus = Literal["active", "acknowledged", "resolved", "false-alarm", "cancelled"]
AckResponse = Literal["on-my-way", "contacted-authorities", "monitoring", "other"]
ResolutionStatus = Literal["safe", "help-arrived", "false-alarm", "other"]


class AlertLocation(Location):
    accuracy: float | None = Field(default=None, ge=0)


class AutoEscalateIn(CamelModel):
    enabled: bool = True
    escalate_after_minutes: int = Field(
        default=DEFAULT_ESCALATE_AFTER_MIN,
        ge=MIN_ESCALATE_AFTER_MIN,
        le=MAX_ESCALATE_AFTER_MIN,
    )


class AlertCreate(CamelModel):
    circle: int
    type: AlertType = "panic"
    severity: Severity = "critical"
    title: str = Field(max_length=ALERT_TITLE_MAX)
    message: str = Field(default="", max_length=ALERT_MESSAGE_MAX)
    location: AlertLocation
    related_check_in: int | None = None
    priority: int | None = Field(default=None, ge=1, le=MAX_PRIORITY)
    auto_escalate: AutoEscalateIn | None = None

    @field_validator("title")
    @classmethod
    def title_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Alert title is required")
        return v


class AlertAcknowledge(CamelModel):
    response: AckResponse = "monitoring"
    notes: str = Field(default="", max_length=ALERT_ACK_NOTES_MAX)


class AlertResolve(CamelModel):
    resolution_status: ResolutionStatus = "safe"
    notes: str = Field(default="", max_length=RESOLUTION_NOTES_MAX)


class AlertReason(CamelModel):
    reason: str = Field(default="", max_length=RESOLUTION_NOTES_MAX)


class AlertPlaceOut(CamelModel):
    coordinates: list[float]
    address: str = ""
    accuracy: float | None = None


class AlertAckOut(CamelModel):
    user_id: int
    acknowledged_at: datetime
    response: AckResponse
    notes: str = ""


class ActivityOut(CamelModel):
    action: str
    performed_by: int | None = None
    timestamp: datetime
    details: str = ""


class ResolutionOut(CamelModel):
    resolved_at: datetime | None = None
    resolved_by: int | None = None
    resolution_status: str | None = None
    resolution_notes: str | None = None


class AutoEscalateOut(CamelModel):
    enabled: bool
    escalate_after_minutes: int
    escalated: bool
    escalated_at: datetime | None = None


class AlertOut(CamelModel):
    id: int
    triggered_by: UserIdentity
    circle_id: int
    type: AlertType
    severity: Severity
    title: str
    message: str
    location: AlertPlaceOut
    status: AlertStatus
    acknowledged_by: list[AlertAckOut] = []
    acknowledgment_count: int
    resolution: ResolutionOut
    related_check_in: int | None = None
    priority: int
    auto_escalate: AutoEscalateOut
    activity_log: list[ActivityOut] = []
    duration_seconds: int
    created_at: datetime
    updated_at: datetime


class AlertStats(CamelModel):
    total: int
    active: int
    resolved: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    by_severity: dict[str, int]
