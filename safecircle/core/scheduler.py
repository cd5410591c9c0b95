"""Periodic lifecycle sweeps: alert escalation and overdue check-ins."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from safecircle.core.config import settings
from safecircle.core.events import EventBus
from safecircle.db.session import SessionLocal
from safecircle.services import alert_service, check_in_service

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "lifecycle-sweep"


def run_sweeps(bus: EventBus) -> None:
    """One pass of both sweeps in a fresh session. Each scan is independent."""
    db = SessionLocal()
    try:
        try:
            alert_service.run_escalation_sweep(db, bus)
        except Exception:
            db.rollback()
            logger.exception("Escalation sweep failed")
        try:
            check_in_service.materialize_overdue(db, bus)
        except Exception:
            db.rollback()
            logger.exception("Overdue sweep failed")
    finally:
        db.close()


def start_scheduler(bus: EventBus) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        run_sweeps,
        "interval",
        seconds=settings.escalation_sweep_interval_seconds,
        args=[bus],
        id=SWEEP_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Lifecycle sweeps scheduled every %ss", settings.escalation_sweep_interval_seconds)
    return scheduler
