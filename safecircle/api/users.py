"""User profile, privacy, location and emergency contact endpoints."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from safecircle.core.deps import get_current_user, get_event_bus
from safecircle.core.events import EventBus
from safecircle.db.session import get_db
from safecircle.models.user import User
from safecircle.schemas.common import Envelope
from safecircle.schemas.user import (
    EmergencyContactIn,
    EmergencyContactOut,
    EmergencyContactUpdate,
    LastKnownLocation,
    LocationSharingUpdate,
    LocationUpdate,
    Me,
    PrivacySettings,
    PrivacyUpdate,
    ProfileUpdate,
    ReducedProfile,
    UserProfile,
)
from safecircle.services import user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/profile", response_model=Envelope[Me])
def get_profile(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return Envelope(data=user_service.serialize_me(db, current_user))


@router.put("/profile", response_model=Envelope[Me])
def update_profile(
    data: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user = user_service.update_profile(db, current_user, data)
    return Envelope(message="Profile updated successfully", data=user_service.serialize_me(db, user))


@router.put("/privacy", response_model=Envelope[PrivacySettings])
def update_privacy(
    data: PrivacyUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user = user_service.update_privacy(db, current_user, data)
    return Envelope(message="Privacy settings updated successfully", data=user_service.privacy_settings(user))


@router.put("/location", response_model=Envelope[LastKnownLocation])
def update_location(
    data: LocationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
):
    """Store the caller's position; circles are told unless location sharing is opted out."""
    location = user_service.update_location(db, current_user, data, bus)
    return Envelope(message="Location updated successfully", data=location)


@router.put("/location/sharing", response_model=Envelope[dict])
def toggle_location_sharing(
    data: LocationSharingUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user = user_service.set_location_sharing(db, current_user, data.is_sharing)
    state = "enabled" if user.is_location_sharing else "disabled"
    return Envelope(message=f"Location sharing {state}", data={"isLocationSharing": user.is_location_sharing})


@router.post(
    "/emergency-contacts",
    response_model=Envelope[EmergencyContactOut],
    status_code=status.HTTP_201_CREATED,
)
def add_emergency_contact(
    data: EmergencyContactIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    contact = user_service.add_emergency_contact(db, current_user, data)
    return Envelope(message="Emergency contact added", data=user_service.serialize_contact(contact))


@router.put("/emergency-contacts/{contact_id}", response_model=Envelope[EmergencyContactOut])
def update_emergency_contact(
    contact_id: int,
    data: EmergencyContactUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    contact = user_service.update_emergency_contact(db, current_user, contact_id, data)
    return Envelope(message="Emergency contact updated", data=user_service.serialize_contact(contact))


@router.delete("/emergency-contacts/{contact_id}", response_model=Envelope[None])
def delete_emergency_contact(
    contact_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user_service.delete_emergency_contact(db, current_user, contact_id)
    return Envelope(message="Emergency contact deleted")


@router.get("/{user_id}", response_model=Envelope[UserProfile | ReducedProfile])
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Another user's profile. Reduced when they hide from circle members."""
    return Envelope(data=user_service.public_profile(db, current_user, user_id))
