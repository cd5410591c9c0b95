"""Check-in lifecycle.

Reads report the derived status (an active check-in past its deadline is
overdue). Every mutation first writes that derived status back, and
``materialize_overdue`` does the same for rows nobody touched.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from safecircle.core import clock
from safecircle.core.errors import AuthorizationError, InvalidTransitionError, NotFoundError, ValidationError
from safecircle.core.events import (
    CHECKIN_CANCELLED,
    CHECKIN_COMPLETED,
    CHECKIN_CREATED,
    CHECKIN_OVERDUE,
    Event,
    EventBus,
    circle_group,
)
from safecircle.core.lifecycle import (
    CHECK_IN_ACTIVE,
    CHECK_IN_CANCELLED,
    CHECK_IN_COMPLETED,
    CHECK_IN_OVERDUE,
    completion_status,
    derive_check_in_status,
    ensure_check_in_transition,
)
from safecircle.core.policies import LIST_LIMIT, LOCATION_HISTORY_LIMIT
from safecircle.db.transitions import apply_transition, touch
from safecircle.models.check_in import CheckIn, CheckInAcknowledgment
from safecircle.models.circle import Circle
from safecircle.models.user import User
from safecircle.schemas.check_in import (
    CheckInAckOut,
    CheckInCreate,
    CheckInOut,
    LocationSample,
    NotificationFlags,
    PlaceOut,
)
from safecircle.services import circle_service
from safecircle.services.user_service import identity

logger = logging.getLogger(__name__)

NOT_FOUND = "Check-in not found"


def _materialize(check_in: CheckIn, now: datetime | None = None) -> str:
    """Persist the derived status on a loaded row and return it."""
    status = derive_check_in_status(check_in.status, check_in.expected_return_time, now)
    if status != check_in.status:
        check_in.status = status
    return status


def _snapshot(db: Session, check_in: CheckIn) -> dict:
    return serialize_check_in(db, check_in).model_dump(by_alias=True, mode="json")


def get_check_in(db: Session, check_in_id: int) -> CheckIn:
    check_in = db.get(CheckIn, check_in_id)
    if not check_in or check_in.is_deleted:
        raise NotFoundError(NOT_FOUND)
    return check_in


def _require_owner(check_in: CheckIn, user: User, action: str) -> None:
    if check_in.user_id != user.id:
        raise AuthorizationError(f"Only the check-in owner can {action} it")


def get_for_viewer(db: Session, user: User, check_in_id: int) -> CheckIn:
    """Owner or a current member of the check-in's circle."""
    check_in = get_check_in(db, check_in_id)
    if check_in.user_id == user.id:
        return check_in
    circle = db.get(Circle, check_in.circle_id)
    if circle is None or not circle_service.is_member(circle, user.id):
        raise AuthorizationError("You are not authorized to view this check-in")
    return check_in


def create(db: Session, owner: User, data: CheckInCreate, bus: EventBus) -> CheckIn:
    circle = circle_service.get_circle(db, data.circle)
    circle_service.require_member(circle, owner.id, "You must be a member of the circle to create check-ins")
    now = clock.utcnow()
    expected = clock.as_utc(data.expected_return_time)
    if expected <= now:
        raise ValidationError("Expected return time must be in the future")

    def mutate(c: Circle) -> CheckIn:
        circle_service.require_member(c, owner.id, "You must be a member of the circle to create check-ins")
        check_in = CheckIn(
            user_id=owner.id,
            circle_id=c.id,
            longitude=data.location.longitude,
            latitude=data.location.latitude,
            address=data.location.address,
            expected_return_time=expected,
            notes=data.notes,
            status=CHECK_IN_ACTIVE,
            location_history=[],
            notify_on_start=data.notify_on_start,
            notify_on_complete=data.notify_on_complete,
            notify_if_overdue=data.notify_if_overdue,
        )
        db.add(check_in)
        c.total_check_ins += 1
        c.last_activity_at = now
        touch(c, now)
        return check_in

    _, check_in = apply_transition(db, Circle, circle.id, mutate, "Circle not found")
    db.refresh(check_in)
    logger.info("Check-in %s created by user %s in circle %s", check_in.id, owner.id, circle.id)

    bus.publish(
        Event(
            CHECKIN_CREATED,
            circle_group(check_in.circle_id),
            {"checkIn": _snapshot(db, check_in), "user": identity(db, owner.id).model_dump(by_alias=True)},
        )
    )
    return check_in


def complete(db: Session, user: User, check_in_id: int, notes: str, bus: EventBus) -> CheckIn:
    _require_owner(get_check_in(db, check_in_id), user, "complete")

    def mutate(check_in: CheckIn) -> None:
        now = clock.utcnow()
        ensure_check_in_transition(_materialize(check_in, now), CHECK_IN_COMPLETED)
        check_in.status = CHECK_IN_COMPLETED
        check_in.completed_at = now
        check_in.completion_notes = notes
        check_in.completion_status = completion_status(check_in.expected_return_time, now)
        touch(check_in, now)

    check_in, _ = apply_transition(db, CheckIn, check_in_id, mutate, NOT_FOUND)
    logger.info("Check-in %s completed (%s)", check_in.id, check_in.completion_status)

    bus.publish(
        Event(
            CHECKIN_COMPLETED,
            circle_group(check_in.circle_id),
            {
                "checkInId": check_in.id,
                "userId": check_in.user_id,
                "completionStatus": check_in.completion_status,
            },
        )
    )
    return check_in


def cancel(db: Session, user: User, check_in_id: int, bus: EventBus) -> CheckIn:
    _require_owner(get_check_in(db, check_in_id), user, "cancel")

    def mutate(check_in: CheckIn) -> None:
        now = clock.utcnow()
        ensure_check_in_transition(_materialize(check_in, now), CHECK_IN_CANCELLED)
        check_in.status = CHECK_IN_CANCELLED
        touch(check_in, now)

    check_in, _ = apply_transition(db, CheckIn, check_in_id, mutate, NOT_FOUND)
    logger.info("Check-in %s cancelled", check_in.id)
    bus.publish(
        Event(
            CHECKIN_CANCELLED,
            circle_group(check_in.circle_id),
            {"checkInId": check_in.id, "userId": check_in.user_id},
        )
    )
    return check_in


def update_location(db: Session, user: User, check_in_id: int, longitude: float, latitude: float) -> CheckIn:
    """Move the check-in and append to its bounded location history. Active only."""
    _require_owner(get_check_in(db, check_in_id), user, "update")

    def mutate(check_in: CheckIn) -> None:
        now = clock.utcnow()
        if _materialize(check_in, now) != CHECK_IN_ACTIVE:
            raise InvalidTransitionError("Can only update location for active check-ins")
        check_in.longitude = longitude
        check_in.latitude = latitude
        sample = {"coordinates": [longitude, latitude], "timestamp": now.isoformat()}
        history = list(check_in.location_history or []) + [sample]
        check_in.location_history = history[-LOCATION_HISTORY_LIMIT:]
        touch(check_in, now)

    check_in, _ = apply_transition(db, CheckIn, check_in_id, mutate, NOT_FOUND)
    return check_in


def acknowledge(db: Session, user: User, check_in_id: int, message: str) -> CheckIn:
    """Record or refresh ``user``'s acknowledgment. One per member, latest wins."""
    check_in = get_check_in(db, check_in_id)
    circle = db.get(Circle, check_in.circle_id)
    if circle is None or not circle_service.is_member(circle, user.id):
        raise AuthorizationError("You must be a circle member to acknowledge check-ins")

    def mutate(ci: CheckIn) -> None:
        now = clock.utcnow()
        _materialize(ci, now)
        ack = next((a for a in ci.acknowledgments if a.user_id == user.id), None)
        if ack is None:
            ci.acknowledgments.append(CheckInAcknowledgment(user_id=user.id, acknowledged_at=now, message=message))
        else:
            ack.acknowledged_at = now
            ack.message = message
        touch(ci, now)

    check_in, _ = apply_transition(db, CheckIn, check_in_id, mutate, NOT_FOUND)
    return check_in


def delete(db: Session, user: User, check_in_id: int) -> None:
    _require_owner(get_check_in(db, check_in_id), user, "delete")

    def mutate(check_in: CheckIn) -> None:
        check_in.is_deleted = True
        touch(check_in)

    apply_transition(db, CheckIn, check_in_id, mutate, NOT_FOUND)


# ---------- Overdue ----------


def _overdue_clause(now: datetime):
    return or_(
        CheckIn.status == CHECK_IN_OVERDUE,
        and_(CheckIn.status == CHECK_IN_ACTIVE, CheckIn.expected_return_time < now),
    )


def find_overdue(db: Session, now: datetime | None = None) -> list[CheckIn]:
    """Active check-ins whose deadline has passed but whose row still says active."""
    now = now or clock.utcnow()
    result = db.execute(
        select(CheckIn)
        .where(CheckIn.is_deleted.is_(False))
        .where(CheckIn.status == CHECK_IN_ACTIVE)
        .where(CheckIn.expected_return_time < now)
        .order_by(CheckIn.expected_return_time)
    )
    return list(result.scalars().all())


def materialize_overdue(db: Session, bus: EventBus, now: datetime | None = None) -> list[int]:
    """Write ``overdue`` to past-deadline rows and announce each one once.

    Returns the ids a ``checkin.overdue`` event was published for.
    """
    now = now or clock.utcnow()
    result = db.execute(
        select(CheckIn.id)
        .where(CheckIn.is_deleted.is_(False))
        .where(
            or_(
                and_(CheckIn.status == CHECK_IN_ACTIVE, CheckIn.expected_return_time < now),
                and_(
                    CheckIn.status == CHECK_IN_OVERDUE,
                    CheckIn.notify_if_overdue.is_(True),
                    CheckIn.overdue_notification_sent.is_(False),
                ),
            )
        )
        .order_by(CheckIn.expected_return_time)
    )
    announced: list[int] = []
    for check_in_id in result.scalars().all():

        def mutate(check_in: CheckIn) -> bool:
            if _materialize(check_in, now) != CHECK_IN_OVERDUE:
                return False
            announce = check_in.notify_if_overdue and not check_in.overdue_notification_sent
            if announce:
                check_in.overdue_notification_sent = True
            touch(check_in, now)
            return announce

        try:
            check_in, announce = apply_transition(db, CheckIn, check_in_id, mutate, NOT_FOUND)
        except Exception:
            logger.exception("Failed to mark check-in %s overdue", check_in_id)
            continue
        if announce:
            logger.info("Check-in %s is overdue", check_in_id)
            bus.publish(
                Event(
                    CHECKIN_OVERDUE,
                    circle_group(check_in.circle_id),
                    {"checkInId": check_in.id, "checkIn": _snapshot(db, check_in)},
                )
            )
            announced.append(check_in_id)
    return announced


# ---------- Lists ----------


def _status_filter(stmt, status: str | None, now: datetime):
    if status == CHECK_IN_OVERDUE:
        return stmt.where(_overdue_clause(now))
    if status == CHECK_IN_ACTIVE:
        return stmt.where(CheckIn.status == CHECK_IN_ACTIVE).where(CheckIn.expected_return_time >= now)
    if status:
        return stmt.where(CheckIn.status == status)
    return stmt


def list_mine(db: Session, user_id: int, status: str | None = None) -> list[CheckIn]:
    stmt = select(CheckIn).where(CheckIn.user_id == user_id).where(CheckIn.is_deleted.is_(False))
    stmt = _status_filter(stmt, status, clock.utcnow())
    result = db.execute(stmt.order_by(CheckIn.created_at.desc(), CheckIn.id.desc()).limit(LIST_LIMIT))
    return list(result.scalars().all())


def list_active_mine(db: Session, user_id: int) -> list[CheckIn]:
    """Unfinished check-ins (active or overdue), soonest deadline first."""
    result = db.execute(
        select(CheckIn)
        .where(CheckIn.user_id == user_id)
        .where(CheckIn.is_deleted.is_(False))
        .where(CheckIn.status.in_([CHECK_IN_ACTIVE, CHECK_IN_OVERDUE]))
        .order_by(CheckIn.expected_return_time, CheckIn.id)
    )
    return list(result.scalars().all())


def list_for_circle(db: Session, user: User, circle_id: int, status: str | None = None) -> list[CheckIn]:
    circle = circle_service.get_circle(db, circle_id)
    circle_service.require_member(circle, user.id, "You are not authorized to view check-ins for this circle")
    stmt = select(CheckIn).where(CheckIn.circle_id == circle_id).where(CheckIn.is_deleted.is_(False))
    stmt = _status_filter(stmt, status, clock.utcnow())
    result = db.execute(stmt.order_by(CheckIn.created_at.desc(), CheckIn.id.desc()).limit(LIST_LIMIT))
    return list(result.scalars().all())


def list_active_for_circle(db: Session, user: User, circle_id: int) -> list[CheckIn]:
    circle = circle_service.get_circle(db, circle_id)
    circle_service.require_member(circle, user.id, "You are not authorized to view check-ins for this circle")
    result = db.execute(
        select(CheckIn)
        .where(CheckIn.circle_id == circle_id)
        .where(CheckIn.is_deleted.is_(False))
        .where(CheckIn.status.in_([CHECK_IN_ACTIVE, CHECK_IN_OVERDUE]))
        .order_by(CheckIn.expected_return_time, CheckIn.id)
    )
    return list(result.scalars().all())


def list_overdue(db: Session, user: User) -> list[CheckIn]:
    """Overdue check-ins across the circles ``user`` belongs to."""
    circle_ids = circle_service.user_circle_ids(db, user.id)
    if not circle_ids:
        return []
    result = db.execute(
        select(CheckIn)
        .where(CheckIn.circle_id.in_(circle_ids))
        .where(CheckIn.is_deleted.is_(False))
        .where(_overdue_clause(clock.utcnow()))
        .order_by(CheckIn.expected_return_time, CheckIn.id)
    )
    return list(result.scalars().all())


# ---------- Read model ----------


def serialize_check_in(db: Session, check_in: CheckIn, now: datetime | None = None) -> CheckInOut:
    now = now or clock.utcnow()
    status = derive_check_in_status(check_in.status, check_in.expected_return_time, now)
    expected = clock.as_utc(check_in.expected_return_time)
    created = clock.as_utc(check_in.created_at)
    completed = clock.as_utc(check_in.completed_at)
    remaining = int((expected - now).total_seconds()) if status == CHECK_IN_ACTIVE else 0
    return CheckInOut(
        id=check_in.id,
        user=identity(db, check_in.user_id),
        circle_id=check_in.circle_id,
        location=PlaceOut(coordinates=[check_in.longitude, check_in.latitude], address=check_in.address),
        expected_return_time=expected,
        notes=check_in.notes,
        status=status,
        completed_at=completed,
        completion_notes=check_in.completion_notes,
        completion_status=check_in.completion_status,
        acknowledgments=[
            CheckInAckOut(user_id=a.user_id, acknowledged_at=clock.as_utc(a.acknowledged_at), message=a.message)
            for a in check_in.acknowledgments
        ],
        location_history=[LocationSample(**sample) for sample in check_in.location_history or []],
        notifications=NotificationFlags(
            notify_on_start=check_in.notify_on_start,
            notify_on_complete=check_in.notify_on_complete,
            notify_if_overdue=check_in.notify_if_overdue,
            overdue_notification_sent=check_in.overdue_notification_sent,
        ),
        is_overdue=status == CHECK_IN_OVERDUE,
        time_remaining_seconds=max(0, remaining),
        duration_seconds=max(0, int(((completed or now) - created).total_seconds())),
        created_at=created,
        updated_at=clock.as_utc(check_in.updated_at),
    )
