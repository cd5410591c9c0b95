"""Check-in schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field

from safecircle.core.policies import CHECKIN_ACK_MESSAGE_MAX, CHECKIN_NOTES_MAX
from safecircle.schemas.common import CamelModel, Coordinates, Location, UserIdentity

CheckInStatus = Literal["active", "completed", "overdue", "cancelled"]


class CheckInCreate(CamelModel):
    circle: int
    location: Location
    expected_return_time: datetime
    notes: str = Field(default="", max_length=CHECKIN_NOTES_MAX)
    notify_on_start: bool = True
    notify_on_complete: bool = True
    notify_if_overdue: bool = True


class CheckInComplete(CamelModel):
    notes: str = Field(default="", max_length=CHECKIN_NOTES_MAX)


class CheckInLocationUpdate(Coordinates):
    pass


class CheckInAcknowledge(CamelModel):
    message: str = Field(default="", max_length=CHECKIN_ACK_MESSAGE_MAX)


class LocationSample(CamelModel):
    coordinates: list[float]
    timestamp: datetime


class PlaceOut(CamelModel):
    coordinates: list[float]
    address: str = ""


class CheckInAckOut(CamelModel):
    user_id: int
    acknowledged_at: datetime
    message: str = ""


class NotificationFlags(CamelModel):
    notify_on_start: bool
    notify_on_complete: bool
    notify_if_overdue: bool
    overdue_notification_sent: bool


class CheckInOut(CamelModel):
    """Read model. ``status`` is derived at read time, so an active check-in past
    its deadline is reported as overdue even before the row is rewritten."""

    id: int
    user: UserIdentity
    circle_id: int
    location: PlaceOut
    expected_return_time: datetime
    notes: str
    status: CheckInStatus
    completed_at: datetime | None = None
    completion_notes: str | None = None
    completion_status: str | None = None
    acknowledgments: list[CheckInAckOut] = []
    location_history: list[LocationSample] = []
    notifications: NotificationFlags
    is_overdue: bool
    time_remaining_seconds: int
    duration_seconds: int
    created_at: datetime
    updated_at: datetime
