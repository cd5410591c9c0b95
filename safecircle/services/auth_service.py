"""Auth service: registration, login lockout, token rotation."""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from safecircle.core import clock
from safecircle.core.config import settings
from safecircle.core.errors import AuthenticationError, LockedAccountError, ValidationError
from safecircle.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    fingerprint_token,
    hash_password,
    verify_password,
)
from safecircle.models.user import User
from safecircle.schemas.auth import RegisterRequest, TokenPair
from safecircle.services.user_service import get_user_by_email

logger = logging.getLogger(__name__)


def issue_tokens(db: Session, user: User, remember_me: bool = False) -> TokenPair:
    """Mint an access/refresh pair and store the refresh fingerprint on the user."""
    minutes = settings.jwt_remember_me_expire_minutes if remember_me else settings.jwt_expire_minutes
    access = create_access_token(subject=user.id, expire_minutes=minutes)
    refresh = create_refresh_token(subject=user.id)
    user.refresh_token_hash = fingerprint_token(refresh)
    db.commit()
    db.refresh(user)
    return TokenPair(access_token=access, refresh_token=refresh)


def register(db: Session, data: RegisterRequest) -> tuple[User, TokenPair]:
    """Create a new user and log them in."""
    email = data.email.lower()
    if get_user_by_email(db, email):
        raise ValidationError("User with this email already exists")
    user = User(
        email=email,
        hashed_password=hash_password(data.password),
        name=data.name,
        phone=data.phone or "",
        last_login=clock.utcnow(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User %s registered", user.id)
    return user, issue_tokens(db, user)


def _record_failed_login(db: Session, user: User) -> None:
    now = clock.utcnow()
    lock_until = clock.as_utc(user.lock_until)
    if lock_until is not None and lock_until <= now:
        # Previous lock has run out, start counting again
        user.lock_until = None
        user.failed_login_attempts = 1
    else:
        user.failed_login_attempts += 1
        if user.failed_login_attempts >= settings.max_login_attempts and not user.is_locked(now):
            user.lock_until = now + timedelta(minutes=settings.account_lock_minutes)
            logger.warning("User %s locked after %s failed logins", user.id, user.failed_login_attempts)
    db.commit()


def login(db: Session, email: str, password: str, remember_me: bool = False) -> tuple[User, TokenPair]:
    """Authenticate by email and password, enforcing the failed-attempt lock."""
    user = get_user_by_email(db, email)
    if not user:
        raise AuthenticationError("Invalid email or password")
    if user.is_locked():
        raise LockedAccountError(
            "Account is temporarily locked due to too many failed login attempts",
            lock_until=clock.as_utc(user.lock_until),
        )
    if not verify_password(password, user.hashed_password):
        _record_failed_login(db, user)
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")

    user.failed_login_attempts = 0
    user.lock_until = None
    user.last_login = clock.utcnow()
    db.commit()
    return user, issue_tokens(db, user, remember_me=remember_me)


def refresh(db: Session, refresh_token: str) -> TokenPair:
    """Exchange the stored refresh token for a new pair. The old one stops working."""
    payload = decode_refresh_token(refresh_token)
    if not payload:
        raise AuthenticationError("Invalid or expired refresh token")
    try:
        user = db.get(User, int(payload["sub"]))
    except (TypeError, ValueError):
        user = None
    if not user or not user.is_active or user.refresh_token_hash != fingerprint_token(refresh_token):
        raise AuthenticationError("Invalid or expired refresh token")
    return issue_tokens(db, user)


def logout(db: Session, user: User) -> None:
    """Forget the stored refresh token. Safe to call repeatedly."""
    if user.refresh_token_hash is not None:
        user.refresh_token_hash = None
        db.commit()


def change_password(db: Session, user: User, current_password: str, new_password: str) -> TokenPair:
    if not verify_password(current_password, user.hashed_password):
        raise AuthenticationError("Current password is incorrect")
    user.hashed_password = hash_password(new_password)
    db.commit()
    logger.info("User %s changed password", user.id)
    return issue_tokens(db, user)
