"""Password hashing and JWT utilities."""

from __future__ import annotations

import hashlib
import uuid
from datetime import timedelta
from typing import Any

import bcrypt
from jose import JWTError, jwt

from safecircle.core import clock
from safecircle.core.config import settings
from safecircle.core.policies import PASSWORD_MAX_BYTES

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def hash_password(password: str) -> str:
    """Hash a plain password."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str | None) -> bool:
    """Verify a plain password against a hash."""
    if not hashed or len(plain.encode()) > PASSWORD_MAX_BYTES:
        return False
    return bcrypt.checkpw(plain.encode(), hashed.encode())


def _encode(subject: str | int, secret: str, minutes: int, token_type: str, extra: dict[str, Any] | None) -> str:
    now = clock.utcnow()
    payload = {
        "sub": str(subject),
        "type": token_type,
        "exp": now + timedelta(minutes=minutes),
        "iat": now,
        # two tokens minted in the same second must still differ
        "jti": uuid.uuid4().hex,
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def create_access_token(
    subject: str | int,
    extra: dict[str, Any] | None = None,
    expire_minutes: int | None = None,
) -> str:
    """Create a JWT access token."""
    minutes = expire_minutes if expire_minutes is not None else settings.jwt_expire_minutes
    return _encode(subject, settings.jwt_secret, minutes, ACCESS_TOKEN_TYPE, extra)


def create_refresh_token(subject: str | int) -> str:
    """Create a JWT refresh token signed with the refresh secret."""
    return _encode(
        subject,
        settings.jwt_refresh_secret,
        settings.jwt_refresh_expire_minutes,
        REFRESH_TOKEN_TYPE,
        None,
    )


def _decode(token: str, secret: str, token_type: str) -> dict[str, Any] | None:
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if payload.get("type") != token_type or "sub" not in payload:
        return None
    return payload


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and validate an access JWT. Returns payload or None if invalid."""
    return _decode(token, settings.jwt_secret, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a refresh JWT. Returns payload or None if invalid."""
    return _decode(token, settings.jwt_refresh_secret, REFRESH_TOKEN_TYPE)


def fingerprint_token(token: str) -> str:
    """Stable digest stored in place of the raw refresh token."""
    return hashlib.sha256(token.encode()).hexdigest()
