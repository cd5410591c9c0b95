"""User profile, privacy, location and emergency contacts."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from safecircle.core import clock
from safecircle.core.errors import NotFoundError
from safecircle.core.events import LOCATION_UPDATED, Event, EventBus, circle_group
from safecircle.models.user import EmergencyContact, User
from safecircle.schemas.common import UserIdentity
from safecircle.schemas.user import (
    EmergencyContactIn,
    EmergencyContactOut,
    EmergencyContactUpdate,
    LastKnownLocation,
    LocationUpdate,
    Me,
    PrivacySettings,
    PrivacyUpdate,
    ProfileUpdate,
    ReducedProfile,
    UserProfile,
)
from safecircle.services.circle_service import user_circle_ids

logger = logging.getLogger(__name__)


def get_user_by_email(db: Session, email: str) -> User | None:
    """Get user by email (case-insensitive)."""
    return db.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()


def identity(db: Session, user_id: int) -> UserIdentity:
    """Public identity attached to events and read models."""
    user = db.get(User, user_id)
    if user is None:
        return UserIdentity(id=user_id, name="")
    return UserIdentity(id=user.id, name=user.name, profile_photo=user.profile_photo)


def _last_known_location(user: User) -> LastKnownLocation | None:
    if user.last_longitude is None or user.last_latitude is None:
        return None
    return LastKnownLocation(
        coordinates=[user.last_longitude, user.last_latitude],
        address=user.last_address,
        timestamp=clock.as_utc(user.last_location_at),
    )


def serialize_profile(user: User, include_location: bool = True) -> UserProfile:
    return UserProfile(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        profile_photo=user.profile_photo,
        bio=user.bio,
        is_location_sharing=user.is_location_sharing,
        last_known_location=_last_known_location(user) if include_location else None,
        created_at=clock.as_utc(user.created_at),
    )


def serialize_contact(contact: EmergencyContact) -> EmergencyContactOut:
    return EmergencyContactOut(
        id=contact.id,
        name=contact.name,
        phone=contact.phone,
        relationship=contact.relationship_label,
        email=contact.email,
    )


def serialize_me(db: Session, user: User) -> Me:
    profile = serialize_profile(user)
    return Me(
        **profile.model_dump(),
        privacy_settings=privacy_settings(user),
        circles=user_circle_ids(db, user.id),
        emergency_contacts=[serialize_contact(c) for c in user.emergency_contacts],
        last_login=clock.as_utc(user.last_login),
    )


def privacy_settings(user: User) -> PrivacySettings:
    return PrivacySettings(
        share_location_with_circles=user.share_location_with_circles,
        allow_check_in_notifications=user.allow_check_in_notifications,
        allow_alert_notifications=user.allow_alert_notifications,
        visible_to_circle_members=user.visible_to_circle_members,
    )


def public_profile(db: Session, viewer: User, user_id: int) -> UserProfile | ReducedProfile:
    """Profile of another user as seen by ``viewer``."""
    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise NotFoundError("User not found")
    if user.id == viewer.id:
        return serialize_profile(user)
    if not user.visible_to_circle_members:
        return ReducedProfile(id=user.id, name=user.name, profile_photo=user.profile_photo)
    return serialize_profile(user, include_location=user.share_location_with_circles)


def update_profile(db: Session, user: User, data: ProfileUpdate) -> User:
    for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(user, field, value.strip() if field == "name" else value)
    db.commit()
    db.refresh(user)
    return user


def update_privacy(db: Session, user: User, data: PrivacyUpdate) -> User:
    for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user


def update_location(db: Session, user: User, data: LocationUpdate, bus: EventBus) -> LastKnownLocation:
    """Store the user's position and tell their circles, unless they opted out."""
    now = clock.utcnow()
    user.last_longitude = data.longitude
    user.last_latitude = data.latitude
    user.last_address = data.address
    user.last_location_at = now
    db.commit()
    db.refresh(user)

    location = _last_known_location(user)
    if user.share_location_with_circles:
        payload = {
            "userId": user.id,
            "coordinates": [data.longitude, data.latitude],
            "address": data.address,
            "timestamp": now.isoformat(),
        }
        for circle_id in user_circle_ids(db, user.id):
            bus.publish(Event(LOCATION_UPDATED, circle_group(circle_id), payload))
    else:
        logger.debug("Location update for user %s not shared (privacy)", user.id)
    return location


def set_location_sharing(db: Session, user: User, is_sharing: bool) -> User:
    user.is_location_sharing = is_sharing
    db.commit()
    db.refresh(user)
    return user


# ---------- Emergency contacts ----------


def _get_contact(db: Session, user: User, contact_id: int) -> EmergencyContact:
    contact = db.get(EmergencyContact, contact_id)
    if not contact or contact.user_id != user.id:
        raise NotFoundError("Emergency contact not found")
    return contact


def add_emergency_contact(db: Session, user: User, data: EmergencyContactIn) -> EmergencyContact:
    contact = EmergencyContact(
        user_id=user.id,
        name=data.name.strip(),
        phone=data.phone.strip(),
        relationship_label=data.relationship,
        email=data.email or "",
    )
    db.add(contact)
    db.commit()
    db.refresh(contact)
    return contact


def update_emergency_contact(
    db: Session,
    user: User,
    contact_id: int,
    data: EmergencyContactUpdate,
) -> EmergencyContact:
    contact = _get_contact(db, user, contact_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "relationship" in changes:
        contact.relationship_label = changes.pop("relationship")
    for field, value in changes.items():
        setattr(contact, field, value)
    db.commit()
    db.refresh(contact)
    return contact


def delete_emergency_contact(db: Session, user: User, contact_id: int) -> None:
    contact = _get_contact(db, user, contact_id)
    db.delete(contact)
    db.commit()
