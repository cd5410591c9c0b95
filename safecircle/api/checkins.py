"""Check-in endpoints."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from safecircle.core.deps import get_current_user, get_event_bus
from safecircle.core.events import EventBus
from safecircle.db.session import get_db
from safecircle.models.user import User
from safecircle.schemas.check_in import (
    CheckInAcknowledge,
    CheckInComplete,
    CheckInCreate,
    CheckInLocationUpdate,
    CheckInOut,
)
from safecircle.schemas.common import Envelope
from safecircle.services import check_in_service

router = APIRouter(prefix="/checkins", tags=["checkins"])

StatusFilter = Literal["active", "completed", "overdue", "cancelled"]


def _many(db: Session, check_ins) -> Envelope[list[CheckInOut]]:
    items = [check_in_service.serialize_check_in(db, c) for c in check_ins]
    return Envelope(data=items, count=len(items))


@router.get("", response_model=Envelope[list[CheckInOut]])
def list_my_check_ins(
    status_filter: StatusFilter | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _many(db, check_in_service.list_mine(db, current_user.id, status_filter))


@router.get("/active", response_model=Envelope[list[CheckInOut]])
def list_my_active_check_ins(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _many(db, check_in_service.list_active_mine(db, current_user.id))


@router.get("/overdue", response_model=Envelope[list[CheckInOut]])
def list_overdue_check_ins(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Overdue check-ins in the caller's circles."""
    return _many(db, check_in_service.list_overdue(db, current_user))


@router.get("/circle/{circle_id}", response_model=Envelope[list[CheckInOut]])
def list_circle_check_ins(
    circle_id: int,
    status_filter: StatusFilter | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _many(db, check_in_service.list_for_circle(db, current_user, circle_id, status_filter))


@router.get("/circle/{circle_id}/active", response_model=Envelope[list[CheckInOut]])
def list_circle_active_check_ins(
    circle_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _many(db, check_in_service.list_active_for_circle(db, current_user, circle_id))


@router.post("", response_model=Envelope[CheckInOut], status_code=status.HTTP_201_CREATED)
def create_check_in(
    data: CheckInCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
):
    check_in = check_in_service.create(db, current_user, data, bus)
    return Envelope(message="Check-in created successfully", data=check_in_service.serialize_check_in(db, check_in))


@router.get("/{check_in_id}", response_model=Envelope[CheckInOut])
def get_check_in(
    check_in_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    check_in = check_in_service.get_for_viewer(db, current_user, check_in_id)
    return Envelope(data=check_in_service.serialize_check_in(db, check_in))


@router.put("/{check_in_id}/complete", response_model=Envelope[CheckInOut])
def complete_check_in(
    check_in_id: int,
    data: CheckInComplete | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
):
    notes = data.notes if data else ""
    check_in = check_in_service.complete(db, current_user, check_in_id, notes, bus)
    return Envelope(message="Check-in completed successfully", data=check_in_service.serialize_check_in(db, check_in))


@router.put("/{check_in_id}/cancel", response_model=Envelope[CheckInOut])
def cancel_check_in(
    check_in_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
):
    check_in = check_in_service.cancel(db, current_user, check_in_id, bus)
    return Envelope(message="Check-in cancelled successfully", data=check_in_service.serialize_check_in(db, check_in))


@router.put("/{check_in_id}/location", response_model=Envelope[CheckInOut])
def update_check_in_location(
    check_in_id: int,
    data: CheckInLocationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    check_in = check_in_service.update_location(db, current_user, check_in_id, data.longitude, data.latitude)
    return Envelope(message="Location updated successfully", data=check_in_service.serialize_check_in(db, check_in))


@router.post("/{check_in_id}/acknowledge", response_model=Envelope[CheckInOut])
def acknowledge_check_in(
    check_in_id: int,
    data: CheckInAcknowledge | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    message = data.message if data else ""
    check_in = check_in_service.acknowledge(db, current_user, check_in_id, message)
    return Envelope(message="Check-in acknowledged", data=check_in_service.serialize_check_in(db, check_in))


@router.delete("/{check_in_id}", response_model=Envelope[None])
def delete_check_in(
    check_in_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    check_in_service.delete(db, current_user, check_in_id)
    return Envelope(message="Check-in deleted successfully")
