"""Alert lifecycle: creation, acknowledgment, resolution, escalation and delivery ledger."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from safecircle.core import clock
from safecircle.core.errors import AuthorizationError, NotFoundError, ValidationError
from safecircle.core.events import (
    ALERT_ACKNOWLEDGED,
    ALERT_CANCELLED,
    ALERT_CREATED,
    ALERT_ESCALATED,
    ALERT_FALSE_ALARM,
    ALERT_RESOLVED,
    Event,
    EventBus,
    circle_group,
)
from safecircle.core.lifecycle import (
    ALERT_ACTIVE,
    ALERT_OPEN_STATES,
    ALERT_STATUSES,
    default_priority,
    ensure_alert_open,
    is_escalation_due,
    status_after_acknowledgment,
)
from safecircle.core.lifecycle import ALERT_CANCELLED as STATUS_CANCELLED
from safecircle.core.lifecycle import ALERT_FALSE_ALARM as STATUS_FALSE_ALARM
from safecircle.core.lifecycle import ALERT_RESOLVED as STATUS_RESOLVED
from safecircle.core.policies import ALERT_CIRCLE_LIST_LIMIT, LIST_LIMIT, MAX_PRIORITY
from safecircle.db.transitions import apply_transition, touch
from safecircle.models.alert import Alert, AlertAcknowledgment, AlertActivity, AlertNotification
from safecircle.models.check_in import CheckIn
from safecircle.models.circle import Circle
from safecircle.models.user import User
from safecircle.schemas.alert import (
    ActivityOut,
    AlertAckOut,
    AlertCreate,
    AlertOut,
    AlertPlaceOut,
    AlertStats,
    AutoEscalateOut,
    ResolutionOut,
)
from safecircle.services import circle_service
from safecircle.services.user_service import identity

logger = logging.getLogger(__name__)

NOT_FOUND = "Alert not found"


def _log(alert: Alert, action: str, performed_by: int | None, details: str = "", now: datetime | None = None) -> None:
    alert.activity_log.append(
        AlertActivity(action=action, performed_by=performed_by, timestamp=now or clock.utcnow(), details=details)
    )


def _identity(db: Session, user_id: int) -> dict:
    return identity(db, user_id).model_dump(by_alias=True)


def get_alert(db: Session, alert_id: int) -> Alert:
    alert = db.get(Alert, alert_id)
    if not alert or alert.is_deleted:
        raise NotFoundError(NOT_FOUND)
    return alert


def _circle_of(db: Session, alert: Alert) -> Circle:
    circle = db.get(Circle, alert.circle_id)
    if circle is None:
        raise NotFoundError("Circle not found")
    return circle


def _require_creator(alert: Alert, user: User, message: str) -> None:
    if alert.triggered_by != user.id:
        raise AuthorizationError(message)


def get_for_viewer(db: Session, user: User, alert_id: int) -> Alert:
    alert = get_alert(db, alert_id)
    if alert.triggered_by != user.id and not circle_service.is_member(_circle_of(db, alert), user.id):
        raise AuthorizationError("You are not authorized to view this alert")
    return alert


# ---------- Commands ----------


def create(db: Session, user: User, data: AlertCreate, bus: EventBus) -> Alert:
    """Raise an alert in one of the user's circles."""
    circle = circle_service.get_circle(db, data.circle)
    circle_service.require_member(circle, user.id, "You must be a member of the circle to create an alert")
    if data.related_check_in is not None:
        check_in = db.get(CheckIn, data.related_check_in)
        if not check_in or check_in.is_deleted or check_in.user_id != user.id:
            raise ValidationError("Invalid check-in reference")

    auto = data.auto_escalate
    now = clock.utcnow()

    def mutate(c: Circle) -> Alert:
        circle_service.require_member(c, user.id, "You must be a member of the circle to create an alert")
        alert = Alert(
            triggered_by=user.id,
            circle_id=c.id,
            type=data.type,
            severity=data.severity,
            title=data.title,
            message=data.message,
            longitude=data.location.longitude,
            latitude=data.location.latitude,
            address=data.location.address,
            accuracy=data.location.accuracy,
            status=ALERT_ACTIVE,
            related_check_in_id=data.related_check_in,
            priority=data.priority or default_priority(data.type, data.severity),
            created_at=now,
        )
        if auto is not None:
            alert.auto_escalate_enabled = auto.enabled
            alert.escalate_after_minutes = auto.escalate_after_minutes
        _log(alert, "created", user.id, f"{data.type} alert created", now)
        db.add(alert)
        c.total_alerts += 1
        c.last_activity_at = now
        touch(c, now)
        return alert

    _, alert = apply_transition(db, Circle, circle.id, mutate, "Circle not found")
    db.refresh(alert)
    logger.info("Alert %s (%s/%s) raised by user %s in circle %s", alert.id, alert.type, alert.severity, user.id, circle.id)

    bus.publish(
        Event(
            ALERT_CREATED,
            circle_group(alert.circle_id),
            {"alertId": alert.id, "alert": snapshot(db, alert), "user": _identity(db, user.id)},
        )
    )
    return alert


def acknowledge(
    db: Session,
    user: User,
    alert_id: int,
    response: str,
    notes: str,
    bus: EventBus,
) -> Alert:
    """Upsert ``user``'s acknowledgment. Promotes active to acknowledged, never regresses."""
    alert = get_alert(db, alert_id)
    if not circle_service.is_member(_circle_of(db, alert), user.id):
        raise AuthorizationError("You must be a circle member to acknowledge alerts")

    def mutate(a: Alert) -> AlertAcknowledgment:
        now = clock.utcnow()
        ack = next((x for x in a.acknowledgments if x.user_id == user.id), None)
        if ack is None:
            ack = AlertAcknowledgment(user_id=user.id, acknowledged_at=now, response=response, notes=notes)
            a.acknowledgments.append(ack)
        else:
            ack.acknowledged_at = now
            ack.response = response
            ack.notes = notes
        a.status = status_after_acknowledgment(a.status)
        _log(a, "acknowledged", user.id, response, now)
        touch(a, now)
        return ack

    alert, ack = apply_transition(db, Alert, alert_id, mutate, NOT_FOUND)
    logger.info("Alert %s acknowledged by user %s (%s)", alert.id, user.id, response)

    bus.publish(
        Event(
            ALERT_ACKNOWLEDGED,
            circle_group(alert.circle_id),
            {
                "alertId": alert.id,
                "status": alert.status,
                "acknowledgment": AlertAckOut(
                    user_id=ack.user_id,
                    acknowledged_at=clock.as_utc(ack.acknowledged_at),
                    response=ack.response,
                    notes=ack.notes,
                ).model_dump(by_alias=True, mode="json"),
                "user": _identity(db, user.id),
            },
        )
    )
    return alert


def resolve(
    db: Session,
    user: User,
    alert_id: int,
    resolution_status: str,
    notes: str,
    bus: EventBus,
) -> Alert:
    alert = get_alert(db, alert_id)
    circle = _circle_of(db, alert)
    if alert.triggered_by != user.id and not circle_service.is_admin(circle, user.id):
        raise AuthorizationError("Only the alert creator or circle admin can resolve alerts")

    def mutate(a: Alert) -> None:
        ensure_alert_open(a.status, "resolve")
        now = clock.utcnow()
        a.status = STATUS_RESOLVED
        a.resolved_at = now
        a.resolved_by = user.id
        a.resolution_status = resolution_status
        a.resolution_notes = notes
        _log(a, "resolved", user.id, resolution_status, now)
        touch(a, now)

    alert, _ = apply_transition(db, Alert, alert_id, mutate, NOT_FOUND)
    logger.info("Alert %s resolved by user %s (%s)", alert.id, user.id, resolution_status)

    bus.publish(
        Event(
            ALERT_RESOLVED,
            circle_group(alert.circle_id),
            {
                "alertId": alert.id,
                "resolution": _resolution(alert).model_dump(by_alias=True, mode="json"),
                "user": _identity(db, user.id),
            },
        )
    )
    return alert


def cancel(db: Session, user: User, alert_id: int, reason: str, bus: EventBus) -> Alert:
    _require_creator(get_alert(db, alert_id), user, "Only the alert creator can cancel alerts")

    def mutate(a: Alert) -> None:
        ensure_alert_open(a.status, "cancel")
        a.status = STATUS_CANCELLED
        _log(a, "cancelled", user.id, reason)
        touch(a)

    alert, _ = apply_transition(db, Alert, alert_id, mutate, NOT_FOUND)
    logger.info("Alert %s cancelled by user %s", alert.id, user.id)
    bus.publish(
        Event(
            ALERT_CANCELLED,
            circle_group(alert.circle_id),
            {"alertId": alert.id, "userId": user.id, "reason": reason},
        )
    )
    return alert


def mark_false_alarm(db: Session, user: User, alert_id: int, reason: str, bus: EventBus) -> Alert:
    _require_creator(get_alert(db, alert_id), user, "Only the alert creator can mark as false alarm")

    def mutate(a: Alert) -> None:
        ensure_alert_open(a.status, "mark as false alarm")
        now = clock.utcnow()
        a.status = STATUS_FALSE_ALARM
        a.resolved_at = now
        a.resolved_by = user.id
        a.resolution_status = "false-alarm"
        a.resolution_notes = reason
        _log(a, "resolved", user.id, f"Marked as false alarm: {reason}" if reason else "Marked as false alarm", now)
        touch(a, now)

    alert, _ = apply_transition(db, Alert, alert_id, mutate, NOT_FOUND)
    logger.info("Alert %s marked false alarm by user %s", alert.id, user.id)
    bus.publish(
        Event(
            ALERT_FALSE_ALARM,
            circle_group(alert.circle_id),
            {"alertId": alert.id, "userId": user.id, "reason": reason},
        )
    )
    return alert


def delete(db: Session, user: User, alert_id: int) -> None:
    alert = get_alert(db, alert_id)
    if alert.triggered_by != user.id and not circle_service.is_admin(_circle_of(db, alert), user.id):
        raise AuthorizationError("Only the alert creator or circle admin can delete alerts")

    def mutate(a: Alert) -> None:
        now = clock.utcnow()
        a.is_deleted = True
        a.deleted_at = now
        touch(a, now)

    apply_transition(db, Alert, alert_id, mutate, NOT_FOUND)


# ---------- Escalation ----------


def escalate(
    db: Session,
    alert_id: int,
    bus: EventBus,
    now: datetime | None = None,
    require_due: bool = False,
) -> bool:
    """Promote an unanswered active alert to top priority.

    A no-op (returns False) once escalated or when the alert is no longer
    active. With ``require_due`` the whole escalation predicate is checked
    again on the freshly loaded row, so a sweep never acts on a stale scan.
    """

    def mutate(a: Alert) -> bool:
        at = now or clock.utcnow()
        if a.escalated or a.status != ALERT_ACTIVE:
            return False
        if require_due and not is_escalation_due(
            a.status, a.auto_escalate_enabled, a.escalated, a.created_at, a.escalate_after_minutes, at
        ):
            return False
        a.escalated = True
        a.escalated_at = at
        a.priority = MAX_PRIORITY
        _log(a, "escalated", None, f"Auto-escalated after {a.escalate_after_minutes} minutes without acknowledgment", at)
        touch(a, at)
        return True

    alert, escalated = apply_transition(db, Alert, alert_id, mutate, NOT_FOUND)
    if escalated:
        logger.info("Alert %s escalated", alert.id)
        bus.publish(
            Event(
                ALERT_ESCALATED,
                circle_group(alert.circle_id),
                {
                    "alertId": alert.id,
                    "priority": alert.priority,
                    "escalatedAt": clock.as_utc(alert.escalated_at).isoformat(),
                    "alert": snapshot(db, alert),
                },
            )
        )
    return escalated


def find_needing_escalation(db: Session, now: datetime | None = None) -> list[Alert]:
    """Active, unacknowledged, not yet escalated alerts past their own threshold."""
    now = now or clock.utcnow()
    result = db.execute(
        select(Alert)
        .where(Alert.is_deleted.is_(False))
        .where(Alert.status == ALERT_ACTIVE)
        .where(Alert.auto_escalate_enabled.is_(True))
        .where(Alert.escalated.is_(False))
        .order_by(Alert.created_at, Alert.id)
    )
    return [
        a
        for a in result.scalars().all()
        if is_escalation_due(a.status, a.auto_escalate_enabled, a.escalated, a.created_at, a.escalate_after_minutes, now)
    ]


def run_escalation_sweep(db: Session, bus: EventBus, now: datetime | None = None) -> list[int]:
    """Escalate every due alert. A failure on one alert does not stop the rest."""
    now = now or clock.utcnow()
    escalated: list[int] = []
    for alert_id in [a.id for a in find_needing_escalation(db, now)]:
        try:
            if escalate(db, alert_id, bus, now=now, require_due=True):
                escalated.append(alert_id)
        except Exception:
            db.rollback()
            logger.exception("Escalation failed for alert %s", alert_id)
    if escalated:
        logger.info("Escalation sweep promoted %s alert(s)", len(escalated))
    return escalated


# ---------- Delivery ledger ----------


def record_notification(
    db: Session,
    alert_id: int,
    user_id: int,
    channel: str = "socket",
    status: str = "sent",
) -> AlertNotification:
    """Append a delivery entry. Never touches the alert's lifecycle fields."""
    entry = AlertNotification(alert_id=alert_id, user_id=user_id, channel=channel, status=status)
    db.add(entry)
    db.commit()
    return entry


def record_failed_notification(
    db: Session,
    alert_id: int,
    user_id: int,
    channel: str,
    error: str,
) -> AlertNotification:
    entry = AlertNotification(alert_id=alert_id, user_id=user_id, channel=channel, status="failed", error=error)
    db.add(entry)
    db.commit()
    logger.warning("Delivery of alert %s to user %s over %s failed: %s", alert_id, user_id, channel, error)
    return entry


def record_deliveries(db: Session, alert_id: int, results: list[tuple[int, str | None]]) -> None:
    """Ledger entries for one fan-out of an alert event over the socket channel."""
    if db.get(Alert, alert_id) is None:
        return
    for user_id, error in results:
        if error is None:
            record_notification(db, alert_id, user_id, "socket", "sent")
        else:
            record_failed_notification(db, alert_id, user_id, "socket", error)


# ---------- Queries ----------


def list_mine(db: Session, user_id: int, status: str | None = None) -> list[Alert]:
    stmt = select(Alert).where(Alert.triggered_by == user_id).where(Alert.is_deleted.is_(False))
    if status:
        stmt = stmt.where(Alert.status == status)
    result = db.execute(stmt.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(LIST_LIMIT))
    return list(result.scalars().all())


def list_for_circle(db: Session, user: User, circle_id: int, status: str | None = None) -> list[Alert]:
    circle = circle_service.get_circle(db, circle_id)
    circle_service.require_member(circle, user.id, "You are not authorized to view alerts for this circle")
    stmt = select(Alert).where(Alert.circle_id == circle_id).where(Alert.is_deleted.is_(False))
    if status:
        stmt = stmt.where(Alert.status == status)
    result = db.execute(stmt.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(ALERT_CIRCLE_LIST_LIMIT))
    return list(result.scalars().all())


def list_active_for_circle(db: Session, user: User, circle_id: int) -> list[Alert]:
    """Open alerts, most urgent first."""
    circle = circle_service.get_circle(db, circle_id)
    circle_service.require_member(circle, user.id, "You are not authorized to view alerts for this circle")
    result = db.execute(
        select(Alert)
        .where(Alert.circle_id == circle_id)
        .where(Alert.is_deleted.is_(False))
        .where(Alert.status.in_(ALERT_OPEN_STATES))
        .order_by(Alert.priority.desc(), Alert.created_at.desc(), Alert.id.desc())
    )
    return list(result.scalars().all())


def _counts(db: Session, column, circle_id: int) -> dict[str, int]:
    rows = db.execute(
        select(column, func.count(Alert.id))
        .where(Alert.circle_id == circle_id)
        .where(Alert.is_deleted.is_(False))
        .group_by(column)
    ).all()
    return {key: count for key, count in rows}


def stats_for_circle(db: Session, user: User, circle_id: int) -> AlertStats:
    circle = circle_service.get_circle(db, circle_id)
    circle_service.require_member(circle, user.id, "You are not authorized to view stats for this circle")
    by_status = _counts(db, Alert.status, circle_id)
    return AlertStats(
        total=sum(by_status.values()),
        active=sum(by_status.get(s, 0) for s in ALERT_OPEN_STATES),
        resolved=by_status.get(STATUS_RESOLVED, 0),
        by_status={s: by_status.get(s, 0) for s in ALERT_STATUSES},
        by_type=_counts(db, Alert.type, circle_id),
        by_severity=_counts(db, Alert.severity, circle_id),
    )


# ---------- Read model ----------


def _resolution(alert: Alert) -> ResolutionOut:
    return ResolutionOut(
        resolved_at=clock.as_utc(alert.resolved_at),
        resolved_by=alert.resolved_by,
        resolution_status=alert.resolution_status,
        resolution_notes=alert.resolution_notes,
    )


def serialize_alert(db: Session, alert: Alert, now: datetime | None = None) -> AlertOut:
    now = now or clock.utcnow()
    created = clock.as_utc(alert.created_at)
    end = clock.as_utc(alert.resolved_at) or now
    return AlertOut(
        id=alert.id,
        triggered_by=identity(db, alert.triggered_by),
        circle_id=alert.circle_id,
        type=alert.type,
        severity=alert.severity,
        title=alert.title,
        message=alert.message,
        location=AlertPlaceOut(
            coordinates=[alert.longitude, alert.latitude],
            address=alert.address,
            accuracy=alert.accuracy,
        ),
        status=alert.status,
        acknowledged_by=[
            AlertAckOut(
                user_id=a.user_id,
                acknowledged_at=clock.as_utc(a.acknowledged_at),
                response=a.response,
                notes=a.notes,
            )
            for a in alert.acknowledgments
        ],
        acknowledgment_count=len(alert.acknowledgments),
        resolution=_resolution(alert),
        related_check_in=alert.related_check_in_id,
        priority=alert.priority,
        auto_escalate=AutoEscalateOut(
            enabled=alert.auto_escalate_enabled,
            escalate_after_minutes=alert.escalate_after_minutes,
            escalated=alert.escalated,
            escalated_at=clock.as_utc(alert.escalated_at),
        ),
        activity_log=[
            ActivityOut(
                action=entry.action,
                performed_by=entry.performed_by,
                timestamp=clock.as_utc(entry.timestamp),
                details=entry.details,
            )
            for entry in alert.activity_log
        ],
        duration_seconds=max(0, int((end - created).total_seconds())),
        created_at=created,
        updated_at=clock.as_utc(alert.updated_at),
    )


def snapshot(db: Session, alert: Alert) -> dict:
    return serialize_alert(db, alert).model_dump(by_alias=True, mode="json")
