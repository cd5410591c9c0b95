"""Alert endpoints."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from safecircle.core.deps import get_current_user, get_event_bus
from safecircle.core.events import EventBus
from safecircle.db.session import get_db
from safecircle.models.user import User
from safecircle.schemas.alert import (
    AlertAcknowledge,
    AlertCreate,
    AlertOut,
    AlertReason,
    AlertResolve,
    AlertStats,
)
from safecircle.schemas.common import Envelope
from safecircle.services import alert_service, circle_service

router = APIRouter(prefix="/alerts", tags=["alerts"])

StatusFilter = Literal["active", "acknowledged", "resolved", "false-alarm", "cancelled"]


def _many(db: Session, alerts) -> Envelope[list[AlertOut]]:
    items = [alert_service.serialize_alert(db, a) for a in alerts]
    return Envelope(data=items, count=len(items))


@router.get("", response_model=Envelope[list[AlertOut]])
def list_my_alerts(
    status_filter: StatusFilter | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Alerts raised by the caller, newest first."""
    return _many(db, alert_service.list_mine(db, current_user.id, status_filter))


@router.get("/escalation-needed", response_model=Envelope[list[AlertOut]])
def list_alerts_needing_escalation(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Escalation candidates in the caller's circles."""
    circle_ids = set(circle_service.user_circle_ids(db, current_user.id))
    return _many(db, [a for a in alert_service.find_needing_escalation(db) if a.circle_id in circle_ids])


@router.get("/circle/{circle_id}", response_model=Envelope[list[AlertOut]])
def list_circle_alerts(
    circle_id: int,
    status_filter: StatusFilter | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _many(db, alert_service.list_for_circle(db, current_user, circle_id, status_filter))


@router.get("/circle/{circle_id}/active", response_model=Envelope[list[AlertOut]])
def list_circle_active_alerts(
    circle_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _many(db, alert_service.list_active_for_circle(db, current_user, circle_id))


@router.get("/circle/{circle_id}/stats", response_model=Envelope[AlertStats])
def circle_alert_stats(
    circle_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return Envelope(data=alert_service.stats_for_circle(db, current_user, circle_id))


@router.post("", response_model=Envelope[AlertOut], status_code=status.HTTP_201_CREATED)
def create_alert(
    data: AlertCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
):
    """Raise an alert. Connected circle members receive ``alert.created``."""
    alert = alert_service.create(db, current_user, data, bus)
    return Envelope(message="Alert created successfully", data=alert_service.serialize_alert(db, alert))


@router.get("/{alert_id}", response_model=Envelope[AlertOut])
def get_alert(
    alert_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    alert = alert_service.get_for_viewer(db, current_user, alert_id)
    return Envelope(data=alert_service.serialize_alert(db, alert))


@router.post("/{alert_id}/acknowledge", response_model=Envelope[AlertOut])
def acknowledge_alert(
    alert_id: int,
    data: AlertAcknowledge | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
):
    data = data or AlertAcknowledge()
    alert = alert_service.acknowledge(db, current_user, alert_id, data.response, data.notes, bus)
    return Envelope(message="Alert acknowledged successfully", data=alert_service.serialize_alert(db, alert))


@router.put("/{alert_id}/resolve", response_model=Envelope[AlertOut])
def resolve_alert(
    alert_id: int,
    data: AlertResolve | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
):
    data = data or AlertResolve()
    alert = alert_service.resolve(db, current_user, alert_id, data.resolution_status, data.notes, bus)
    return Envelope(message="Alert resolved successfully", data=alert_service.serialize_alert(db, alert))


@router.put("/{alert_id}/cancel", response_model=Envelope[AlertOut])
def cancel_alert(
    alert_id: int,
    data: AlertReason | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
):
    reason = data.reason if data else ""
    alert = alert_service.cancel(db, current_user, alert_id, reason, bus)
    return Envelope(message="Alert cancelled successfully", data=alert_service.serialize_alert(db, alert))


@router.put("/{alert_id}/false-alarm", response_model=Envelope[AlertOut])
def mark_false_alarm(
    alert_id: int,
    data: AlertReason | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    bus: EventBus = Depends(get_event_bus),
):
    reason = data.reason if data else ""
    alert = alert_service.mark_false_alarm(db, current_user, alert_id, reason, bus)
    return Envelope(message="Alert marked as false alarm", data=alert_service.serialize_alert(db, alert))


@router.delete("/{alert_id}", response_model=Envelope[None])
def delete_alert(
    alert_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    alert_service.delete(db, current_user, alert_id)
    return Envelope(message="Alert deleted successfully")
