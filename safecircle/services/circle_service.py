"""Circle registry: membership, roles, invites and invite codes.

Membership mutators (``add_member``, ``remove_member``, ...) work on a loaded
``Circle`` and are meant to run inside ``apply_transition`` so the circle's
version guards the admin and capacity invariants against concurrent edits.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from safecircle.core import clock
from safecircle.core.errors import (
    AlreadyMemberError,
    AuthorizationError,
    CapacityError,
    DuplicateInviteError,
    ExpiredError,
    LastAdminError,
    NotFoundError,
    ValidationError,
)
from safecircle.core.policies import INVITE_CODE_BYTES, INVITE_CODE_TTL_DAYS, PENDING_INVITE_TTL_DAYS
from safecircle.db.transitions import apply_transition, touch
from safecircle.models.circle import Circle, CircleInvite, CircleMember
from safecircle.models.user import User
from safecircle.schemas.circle import (
    CircleCreate,
    CircleOut,
    CircleSettings,
    CircleStats,
    CircleUpdate,
    MemberOut,
    PendingInviteOut,
)

logger = logging.getLogger(__name__)

ADMIN = "admin"
MEMBER = "member"


def generate_invite_code() -> str:
    """Random 8-character invite code."""
    return secrets.token_hex(INVITE_CODE_BYTES).upper()


# ---------- Predicates ----------


def find_member(circle: Circle, user_id: int) -> CircleMember | None:
    for member in circle.members:
        if member.user_id == user_id:
            return member
    return None


def active_members(circle: Circle) -> list[CircleMember]:
    return [m for m in circle.members if m.is_active]


def active_admins(circle: Circle) -> list[CircleMember]:
    return [m for m in circle.members if m.is_active and m.role == ADMIN]


def is_member(circle: Circle, user_id: int) -> bool:
    member = find_member(circle, user_id)
    return member is not None and member.is_active


def is_admin(circle: Circle, user_id: int) -> bool:
    member = find_member(circle, user_id)
    return member is not None and member.is_active and member.role == ADMIN


def require_member(circle: Circle, user_id: int, message: str = "You are not a member of this circle") -> None:
    if not is_member(circle, user_id):
        raise AuthorizationError(message)


def require_admin(circle: Circle, user_id: int, message: str = "Only circle admins can perform this action") -> None:
    if not is_admin(circle, user_id):
        raise AuthorizationError(message)


def _ensure_active(circle: Circle) -> None:
    if not circle.is_active:
        raise NotFoundError("Circle not found")


# ---------- Mutators (run inside a circle transition) ----------


def add_member(circle: Circle, user_id: int, role: str = MEMBER, now: datetime | None = None) -> CircleMember:
    """Add or reactivate a member. Already active members are left untouched."""
    now = now or clock.utcnow()
    member = find_member(circle, user_id)
    if member is not None and member.is_active:
        return member
    if len(active_members(circle)) >= circle.max_members:
        raise CapacityError("Circle has reached maximum member limit")
    if member is None:
        member = CircleMember(user_id=user_id, role=role, joined_at=now, is_active=True)
        circle.members.append(member)
    else:
        member.is_active = True
        member.role = role
        member.joined_at = now
    circle.last_activity_at = now
    touch(circle, now)
    return member


def remove_member(circle: Circle, user_id: int, now: datetime | None = None) -> CircleMember:
    """Soft-remove a member. The sole active admin can never be removed."""
    member = find_member(circle, user_id)
    if member is None or not member.is_active:
        raise NotFoundError("Member not found in this circle")
    if member.role == ADMIN and len(active_admins(circle)) <= 1:
        raise LastAdminError("Cannot remove the only admin. Assign another admin first.")
    member.is_active = False
    now = now or clock.utcnow()
    circle.last_activity_at = now
    touch(circle, now)
    return member


def update_member_role(circle: Circle, user_id: int, role: str, now: datetime | None = None) -> CircleMember:
    if role not in (ADMIN, MEMBER):
        raise ValidationError("Role must be admin or member")
    member = find_member(circle, user_id)
    if member is None or not member.is_active:
        raise NotFoundError("Member not found in this circle")
    if member.role == ADMIN and role != ADMIN and len(active_admins(circle)) <= 1:
        raise LastAdminError("Cannot demote the only admin. Assign another admin first.")
    member.role = role
    touch(circle, now)
    return member


def prune_expired_invites(circle: Circle, now: datetime | None = None) -> None:
    now = now or clock.utcnow()
    for invite in list(circle.pending_invites):
        if clock.as_utc(invite.expires_at) <= now:
            circle.pending_invites.remove(invite)


def add_invite(circle: Circle, email: str, invited_by: int, now: datetime | None = None) -> CircleInvite:
    """Record a pending email invite, rejecting a second live invite to the same address."""
    now = now or clock.utcnow()
    email = email.strip().lower()
    prune_expired_invites(circle, now)
    if any(invite.email == email for invite in circle.pending_invites):
        raise DuplicateInviteError("An invitation has already been sent to this email")
    invite = CircleInvite(
        email=email,
        invited_by=invited_by,
        invited_at=now,
        expires_at=now + timedelta(days=PENDING_INVITE_TTL_DAYS),
    )
    circle.pending_invites.append(invite)
    touch(circle, now)
    return invite


def regenerate_invite_code(circle: Circle, now: datetime | None = None) -> str:
    now = now or clock.utcnow()
    circle.invite_code = generate_invite_code()
    circle.invite_code_expiry = now + timedelta(days=INVITE_CODE_TTL_DAYS)
    touch(circle, now)
    return circle.invite_code


# ---------- Queries ----------


def get_circle(db: Session, circle_id: int) -> Circle:
    circle = db.get(Circle, circle_id)
    if not circle or not circle.is_active:
        raise NotFoundError("Circle not found")
    return circle


def user_circle_ids(db: Session, user_id: int) -> list[int]:
    """Ids of the active circles the user is an active member of."""
    result = db.execute(
        select(CircleMember.circle_id)
        .join(Circle, Circle.id == CircleMember.circle_id)
        .where(CircleMember.user_id == user_id)
        .where(CircleMember.is_active.is_(True))
        .where(Circle.is_active.is_(True))
        .order_by(CircleMember.circle_id)
    )
    return list(result.scalars().all())


def list_user_circles(db: Session, user_id: int) -> list[Circle]:
    ids = user_circle_ids(db, user_id)
    if not ids:
        return []
    result = db.execute(select(Circle).where(Circle.id.in_(ids)).order_by(Circle.created_at.desc(), Circle.id.desc()))
    return list(result.scalars().all())


def get_circle_for_member(db: Session, circle_id: int, user: User) -> Circle:
    circle = get_circle(db, circle_id)
    require_member(circle, user.id, "You are not authorized to view this circle")
    return circle


# ---------- Commands ----------


def create_circle(db: Session, owner: User, data: CircleCreate) -> Circle:
    """Create a circle with ``owner`` as its sole admin and a fresh invite code."""
    now = clock.utcnow()
    circle_settings = data.settings or CircleSettings()
    circle = Circle(
        name=data.name,
        description=data.description,
        created_by=owner.id,
        invite_code=generate_invite_code(),
        invite_code_expiry=now + timedelta(days=INVITE_CODE_TTL_DAYS),
        require_approval=circle_settings.require_approval,
        allow_member_invites=circle_settings.allow_member_invites,
        max_members=circle_settings.max_members,
        auto_share_location=circle_settings.auto_share_location,
        last_activity_at=now,
    )
    circle.members.append(CircleMember(user_id=owner.id, role=ADMIN, joined_at=now, is_active=True))
    db.add(circle)
    db.commit()
    db.refresh(circle)
    logger.info("Circle %s created by user %s", circle.id, owner.id)
    return circle


def update_circle(db: Session, circle_id: int, actor: User, data: CircleUpdate) -> Circle:
    def mutate(circle: Circle) -> None:
        _ensure_active(circle)
        require_admin(circle, actor.id, "Only circle admins can update circle settings")
        if data.name is not None:
            circle.name = data.name
        if data.description is not None:
            circle.description = data.description
        if data.settings is not None:
            changes = data.settings.model_dump(exclude_unset=True, exclude_none=True)
            max_members = changes.get("max_members")
            if max_members is not None and max_members < len(active_members(circle)):
                raise CapacityError("maxMembers cannot be lower than the current member count")
            for field, value in changes.items():
                setattr(circle, field, value)
        touch(circle)

    circle, _ = apply_transition(db, Circle, circle_id, mutate, "Circle not found")
    return circle


def delete_circle(db: Session, circle_id: int, actor: User) -> None:
    """Soft-delete. Members drop the circle from their memberships implicitly."""

    def mutate(circle: Circle) -> None:
        _ensure_active(circle)
        require_admin(circle, actor.id, "Only circle admins can delete the circle")
        circle.is_active = False
        touch(circle)

    apply_transition(db, Circle, circle_id, mutate, "Circle not found")
    logger.info("Circle %s deleted by user %s", circle_id, actor.id)


def invite(db: Session, circle_id: int, actor: User, email: str) -> tuple[Circle, str]:
    """Invite by email. Registered users are added directly, others get a pending invite.

    Returns the circle and ``"added"`` or ``"invited"``.
    """
    email = email.strip().lower()
    invitee = db.execute(select(User).where(User.email == email)).scalar_one_or_none()

    def mutate(circle: Circle) -> str:
        _ensure_active(circle)
        require_member(circle, actor.id)
        if not is_admin(circle, actor.id) and not circle.allow_member_invites:
            raise AuthorizationError("Only admins can invite members to this circle")
        if invitee is not None and invitee.is_active:
            if is_member(circle, invitee.id):
                raise AlreadyMemberError("User is already a member of this circle")
            add_member(circle, invitee.id)
            return "added"
        add_invite(circle, email, actor.id)
        return "invited"

    circle, outcome = apply_transition(db, Circle, circle_id, mutate, "Circle not found")
    logger.info("Circle %s: %s %s by user %s", circle_id, email, outcome, actor.id)
    return circle, outcome


def join_by_code(db: Session, user: User, code: str) -> Circle:
    code = code.strip().upper()
    circle = db.execute(select(Circle).where(Circle.invite_code == code)).scalar_one_or_none()
    if not circle or not circle.is_active:
        raise NotFoundError("Invalid invite code")

    def mutate(c: Circle) -> None:
        if not c.is_active or c.invite_code != code:
            raise NotFoundError("Invalid invite code")
        expiry = clock.as_utc(c.invite_code_expiry)
        if expiry is not None and expiry < clock.utcnow():
            raise ExpiredError("Invite code has expired")
        if is_member(c, user.id):
            raise AlreadyMemberError("You are already a member of this circle")
        add_member(c, user.id)
        prune_expired_invites(c)
        c.pending_invites = [i for i in c.pending_invites if i.email != user.email]

    circle, _ = apply_transition(db, Circle, circle.id, mutate, "Circle not found")
    logger.info("User %s joined circle %s by code", user.id, circle.id)
    return circle


def leave(db: Session, circle_id: int, user: User) -> None:
    def mutate(circle: Circle) -> None:
        _ensure_active(circle)
        if not is_member(circle, user.id):
            raise ValidationError("You are not a member of this circle")
        remove_member(circle, user.id)

    apply_transition(db, Circle, circle_id, mutate, "Circle not found")
    logger.info("User %s left circle %s", user.id, circle_id)


def remove_member_by_admin(db: Session, circle_id: int, actor: User, user_id: int) -> Circle:
    if user_id == actor.id:
        raise ValidationError("Use leave to remove yourself from a circle")

    def mutate(circle: Circle) -> None:
        _ensure_active(circle)
        require_admin(circle, actor.id, "Only circle admins can remove members")
        remove_member(circle, user_id)

    circle, _ = apply_transition(db, Circle, circle_id, mutate, "Circle not found")
    logger.info("User %s removed from circle %s by %s", user_id, circle_id, actor.id)
    return circle


def change_member_role(db: Session, circle_id: int, actor: User, user_id: int, role: str) -> Circle:
    def mutate(circle: Circle) -> None:
        _ensure_active(circle)
        require_admin(circle, actor.id, "Only circle admins can change member roles")
        update_member_role(circle, user_id, role)

    circle, _ = apply_transition(db, Circle, circle_id, mutate, "Circle not found")
    return circle


def regenerate_code(db: Session, circle_id: int, actor: User) -> Circle:
    def mutate(circle: Circle) -> str:
        _ensure_active(circle)
        require_admin(circle, actor.id, "Only circle admins can regenerate the invite code")
        return regenerate_invite_code(circle)

    circle, _ = apply_transition(db, Circle, circle_id, mutate, "Circle not found")
    return circle


# ---------- Read models ----------


def serialize_member(db: Session, member: CircleMember) -> MemberOut:
    user = db.get(User, member.user_id)
    return MemberOut(
        user_id=member.user_id,
        name=user.name if user else "",
        email=user.email if user else "",
        profile_photo=user.profile_photo if user else "",
        role=member.role,
        joined_at=clock.as_utc(member.joined_at),
        is_active=member.is_active,
    )


def list_members(db: Session, circle: Circle) -> list[MemberOut]:
    return [serialize_member(db, m) for m in active_members(circle)]


def serialize_circle(db: Session, circle: Circle) -> CircleOut:
    now = clock.utcnow()
    return CircleOut(
        id=circle.id,
        name=circle.name,
        description=circle.description,
        created_by=circle.created_by,
        invite_code=circle.invite_code,
        invite_code_expiry=clock.as_utc(circle.invite_code_expiry),
        settings=CircleSettings(
            require_approval=circle.require_approval,
            allow_member_invites=circle.allow_member_invites,
            max_members=circle.max_members,
            auto_share_location=circle.auto_share_location,
        ),
        is_active=circle.is_active,
        stats=CircleStats(
            total_alerts=circle.total_alerts,
            total_check_ins=circle.total_check_ins,
            last_activity_at=clock.as_utc(circle.last_activity_at),
        ),
        member_count=len(active_members(circle)),
        members=list_members(db, circle),
        pending_invites=[
            PendingInviteOut(
                email=i.email,
                invited_by=i.invited_by,
                invited_at=clock.as_utc(i.invited_at),
                expires_at=clock.as_utc(i.expires_at),
            )
            for i in circle.pending_invites
            if clock.as_utc(i.expires_at) > now
        ],
        created_at=clock.as_utc(circle.created_at),
        updated_at=clock.as_utc(circle.updated_at),
    )
