"""Circle schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import EmailStr, Field, field_validator

from safecircle.core.policies import (
    CIRCLE_DESCRIPTION_MAX,
    CIRCLE_NAME_MAX,
    CIRCLE_NAME_MIN,
    DEFAULT_MAX_MEMBERS,
    MAX_MAX_MEMBERS,
    MIN_MAX_MEMBERS,
)
from safecircle.schemas.common import CamelModel

Role = Literal["admin", "member"]


class CircleSettings(CamelModel):
    require_approval: bool = False
    allow_member_invites: bool = True
    max_members: int = Field(default=DEFAULT_MAX_MEMBERS, ge=MIN_MAX_MEMBERS, le=MAX_MAX_MEMBERS)
    auto_share_location: bool = True


class CircleSettingsUpdate(CamelModel):
    require_approval: bool | None = None
    allow_member_invites: bool | None = None
    max_members: int | None = Field(default=None, ge=MIN_MAX_MEMBERS, le=MAX_MAX_MEMBERS)
    auto_share_location: bool | None = None


def _clean_name(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    if not CIRCLE_NAME_MIN <= len(v) <= CIRCLE_NAME_MAX:
        raise ValueError(f"Circle name must be between {CIRCLE_NAME_MIN} and {CIRCLE_NAME_MAX} characters")
    return v


class CircleCreate(CamelModel):
    name: str
    description: str = Field(default="", max_length=CIRCLE_DESCRIPTION_MAX)
    settings: CircleSettings | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _clean_name(v)


class CircleUpdate(CamelModel):
    name: str | None = None
    description: str | None = Field(default=None, max_length=CIRCLE_DESCRIPTION_MAX)
    settings: CircleSettingsUpdate | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _clean_name(v)


class InviteRequest(CamelModel):
    email: EmailStr


class JoinRequest(CamelModel):
    invite_code: str = Field(min_length=1, max_length=16)


class RoleUpdate(CamelModel):
    role: Role


class MemberOut(CamelModel):
    user_id: int
    name: str
    email: str
    profile_photo: str = ""
    role: Role
    joined_at: datetime
    is_active: bool


class PendingInviteOut(CamelModel):
    email: str
    invited_by: int | None = None
    invited_at: datetime
    expires_at: datetime


class CircleStats(CamelModel):
    total_alerts: int
    total_check_ins: int
    last_activity_at: datetime


class CircleOut(CamelModel):
    id: int
    name: str
    description: str
    created_by: int
    invite_code: str | None = None
    invite_code_expiry: datetime | None = None
    settings: CircleSettings
    is_active: bool
    stats: CircleStats
    member_count: int
    members: list[MemberOut] = []
    pending_invites: list[PendingInviteOut] = []
    created_at: datetime
    updated_at: datetime


class InviteCodeOut(CamelModel):
    invite_code: str
    invite_code_expiry: datetime
