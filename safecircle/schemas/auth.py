"""Auth schemas."""

from __future__ import annotations

import re

from pydantic import EmailStr, Field, field_validator

from safecircle.core.policies import PASSWORD_MAX_BYTES, PASSWORD_MIN, USER_NAME_MAX, USER_NAME_MIN
from safecircle.schemas.common import CamelModel
from safecircle.schemas.user import UserProfile

PHONE_RE = re.compile(r"^\+?[\d\s\-()]+$")


def validate_password_strength(v: str) -> str:
    if len(v) < PASSWORD_MIN:
        raise ValueError(f"Password must be at least {PASSWORD_MIN} characters")
    if len(v.encode()) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"\d", v):
        raise ValueError("Password must contain at least one number")
    return v


class RegisterRequest(CamelModel):
    name: str = Field(min_length=USER_NAME_MIN, max_length=USER_NAME_MAX)
    email: EmailStr
    password: str
    phone: str | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < USER_NAME_MIN:
            raise ValueError(f"Name must be at least {USER_NAME_MIN} characters")
        return v

    @field_validator("password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return validate_password_strength(v)

    @field_validator("phone")
    @classmethod
    def valid_phone(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if v and not PHONE_RE.match(v):
            raise ValueError("Please provide a valid phone number")
        return v


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)
    remember_me: bool = False


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class PasswordUpdateRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return validate_password_strength(v)


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthPayload(TokenPair):
    user: UserProfile
