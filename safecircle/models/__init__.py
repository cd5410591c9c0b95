"""SQLAlchemy models."""

from __future__ import annotations

from safecircle.models.alert import Alert, AlertAcknowledgment, AlertActivity, AlertNotification
from safecircle.models.check_in import CheckIn, CheckInAcknowledgment
from safecircle.models.circle import Circle, CircleInvite, CircleMember
from safecircle.models.user import EmergencyContact, User

__all__ = [
    "User",
    "EmergencyContact",
    "Circle",
    "CircleMember",
    "CircleInvite",
    "CheckIn",
    "CheckInAcknowledgment",
    "Alert",
    "AlertAcknowledgment",
    "AlertActivity",
    "AlertNotification",
]
