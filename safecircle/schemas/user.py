"""User schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import EmailStr, Field, StrictBool

from safecircle.core.policies import BIO_MAX, USER_NAME_MAX, USER_NAME_MIN
from safecircle.schemas.common import CamelModel, Coordinates


class LastKnownLocation(CamelModel):
    coordinates: list[float]
    address: str = ""
    timestamp: datetime | None = None


class PrivacySettings(CamelModel):
    share_location_with_circles: bool
    allow_check_in_notifications: bool
    allow_alert_notifications: bool
    visible_to_circle_members: bool


class PrivacyUpdate(CamelModel):
    share_location_with_circles: bool | None = None
    allow_check_in_notifications: bool | None = None
    allow_alert_notifications: bool | None = None
    visible_to_circle_members: bool | None = None


class UserProfile(CamelModel):
    """Profile as shown to the user and to circle members."""

    id: int
    name: str
    email: str
    phone: str = ""
    profile_photo: str = ""
    bio: str = ""
    is_location_sharing: bool = False
    last_known_location: LastKnownLocation | None = None
    created_at: datetime


class ReducedProfile(CamelModel):
    """What others see when a user hides from circle members."""

    id: int
    name: str
    profile_photo: str = ""


class EmergencyContactIn(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=1, max_length=30)
    relationship: str = Field(default="", max_length=50)
    email: EmailStr | None = None


class EmergencyContactUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    phone: str | None = Field(default=None, min_length=1, max_length=30)
    relationship: str | None = Field(default=None, max_length=50)
    email: EmailStr | None = None


class EmergencyContactOut(CamelModel):
    id: int
    name: str
    phone: str
    relationship: str = ""
    email: str = ""


class Me(UserProfile):
    privacy_settings: PrivacySettings
    circles: list[int] = []
    emergency_contacts: list[EmergencyContactOut] = []
    last_login: datetime | None = None


class ProfileUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=USER_NAME_MIN, max_length=USER_NAME_MAX)
    phone: str | None = Field(default=None, max_length=30)
    bio: str | None = Field(default=None, max_length=BIO_MAX)
    profile_photo: str | None = Field(default=None, max_length=500)


class LocationUpdate(Coordinates):
    address: str = Field(default="", max_length=500)


class LocationSharingUpdate(CamelModel):
    is_sharing: StrictBool
