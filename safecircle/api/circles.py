"""Circle endpoints."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from safecircle.core.deps import get_current_user
from safecircle.db.session import get_db
from safecircle.models.user import User
from safecircle.schemas.circle import (
    CircleCreate,
    CircleOut,
    CircleUpdate,
    InviteCodeOut,
    InviteRequest,
    JoinRequest,
    MemberOut,
    RoleUpdate,
)
from safecircle.schemas.common import Envelope
from safecircle.services import circle_service

router = APIRouter(prefix="/circles", tags=["circles"])


@router.get("", response_model=Envelope[list[CircleOut]])
def list_my_circles(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Active circles the caller is an active member of."""
    circles = [circle_service.serialize_circle(db, c) for c in circle_service.list_user_circles(db, current_user.id)]
    return Envelope(data=circles, count=len(circles))


@router.post("", response_model=Envelope[CircleOut], status_code=status.HTTP_201_CREATED)
def create_circle(
    data: CircleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a circle. The creator becomes its only admin."""
    circle = circle_service.create_circle(db, current_user, data)
    return Envelope(message="Circle created successfully", data=circle_service.serialize_circle(db, circle))


@router.post("/join", response_model=Envelope[CircleOut])
def join_circle(
    data: JoinRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    circle = circle_service.join_by_code(db, current_user, data.invite_code)
    return Envelope(message="Successfully joined circle", data=circle_service.serialize_circle(db, circle))


@router.get("/{circle_id}", response_model=Envelope[CircleOut])
def get_circle(
    circle_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    circle = circle_service.get_circle_for_member(db, circle_id, current_user)
    return Envelope(data=circle_service.serialize_circle(db, circle))


@router.put("/{circle_id}", response_model=Envelope[CircleOut])
def update_circle(
    circle_id: int,
    data: CircleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    circle = circle_service.update_circle(db, circle_id, current_user, data)
    return Envelope(message="Circle updated successfully", data=circle_service.serialize_circle(db, circle))


@router.delete("/{circle_id}", response_model=Envelope[None])
def delete_circle(
    circle_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Soft-delete. Admin only."""
    circle_service.delete_circle(db, circle_id, current_user)
    return Envelope(message="Circle deleted successfully")


@router.get("/{circle_id}/members", response_model=Envelope[list[MemberOut]])
def list_members(
    circle_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    circle = circle_service.get_circle_for_member(db, circle_id, current_user)
    members = circle_service.list_members(db, circle)
    return Envelope(data=members, count=len(members))


@router.post("/{circle_id}/invite", response_model=Envelope[CircleOut])
def invite_member(
    circle_id: int,
    data: InviteRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Invite by email. Registered users are added right away."""
    circle, outcome = circle_service.invite(db, circle_id, current_user, data.email)
    message = "User added to circle" if outcome == "added" else "Invitation sent"
    return Envelope(message=message, data=circle_service.serialize_circle(db, circle))


@router.post("/{circle_id}/leave", response_model=Envelope[None])
def leave_circle(
    circle_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    circle_service.leave(db, circle_id, current_user)
    return Envelope(message="Successfully left circle")


@router.delete("/{circle_id}/members/{user_id}", response_model=Envelope[CircleOut])
def remove_member(
    circle_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    circle = circle_service.remove_member_by_admin(db, circle_id, current_user, user_id)
    return Envelope(message="Member removed successfully", data=circle_service.serialize_circle(db, circle))


@router.put("/{circle_id}/members/{user_id}/role", response_model=Envelope[CircleOut])
def update_member_role(
    circle_id: int,
    user_id: int,
    data: RoleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    circle = circle_service.change_member_role(db, circle_id, current_user, user_id, data.role)
    return Envelope(message="Member role updated successfully", data=circle_service.serialize_circle(db, circle))


@router.post("/{circle_id}/regenerate-code", response_model=Envelope[InviteCodeOut])
def regenerate_invite_code(
    circle_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    circle = circle_service.regenerate_code(db, circle_id, current_user)
    return Envelope(
        message="Invite code regenerated",
        data=InviteCodeOut(invite_code=circle.invite_code, invite_code_expiry=circle.invite_code_expiry),
    )
