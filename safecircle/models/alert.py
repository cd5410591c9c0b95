"""Alert model and its per-member child rows."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from safecircle.core import clock
from safecircle.core.policies import DEFAULT_ESCALATE_AFTER_MIN, MAX_PRIORITY
from safecircle.db.base import Base


class Alert(Base):
    """Emergency broadcast raised by a circle member."""

    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    triggered_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    circle_id: Mapped[int] = mapped_column(ForeignKey("circles.id", ondelete="CASCADE"), index=True, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="panic")  # panic | check-in-overdue | sos | location-sharing | manual
    severity: Mapped[str] = mapped_column(String(10), nullable=False, default="critical")  # low | medium | high | critical
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")

    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)

    status: Mapped[str] = mapped_column(String(20), index=True, nullable=False, default="active")  # active | acknowledged | resolved | false-alarm | cancelled

    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resolution_status: Mapped[str | None] = mapped_column(String(20), nullable=True)  # safe | help-arrived | false-alarm | other
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    related_check_in_id: Mapped[int | None] = mapped_column(ForeignKey("check_ins.id", ondelete="SET NULL"), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=MAX_PRIORITY)

    auto_escalate_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    escalate_after_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_ESCALATE_AFTER_MIN)
    escalated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        index=True,
        default=lambda: clock.utcnow(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: clock.utcnow(),
        onupdate=lambda: clock.utcnow(),
        nullable=False,
    )

    acknowledgments: Mapped[list["AlertAcknowledgment"]] = relationship(
        back_populates="alert",
        cascade="all, delete-orphan",
        order_by="AlertAcknowledgment.id",
        lazy="selectin",
    )
    activity_log: Mapped[list["AlertActivity"]] = relationship(
        back_populates="alert",
        cascade="all, delete-orphan",
        order_by="AlertActivity.id",
        lazy="selectin",
    )
    notifications: Mapped[list["AlertNotification"]] = relationship(
        back_populates="alert",
        cascade="all, delete-orphan",
        order_by="AlertNotification.id",
    )

    __mapper_args__ = {"version_id_col": version}


class AlertAcknowledgment(Base):
    """A circle member's response to an alert. One per member, updated in place."""

    __tablename__ = "alert_acknowledgments"
    __table_args__ = (
        UniqueConstraint("alert_id", "user_id", name="uq_alert_ack_alert_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    alert_id: Mapped[int] = mapped_column(ForeignKey("alerts.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    acknowledged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    response: Mapped[str] = mapped_column(String(30), nullable=False, default="monitoring")  # on-my-way | contacted-authorities | monitoring | other
    notes: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    alert: Mapped[Alert] = relationship(back_populates="acknowledgments")


class AlertActivity(Base):
    """Append-only audit entry."""

    __tablename__ = "alert_activity"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    alert_id: Mapped[int] = mapped_column(ForeignKey("alerts.id", ondelete="CASCADE"), index=True, nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)  # created | acknowledged | escalated | resolved | cancelled | updated
    performed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=False, default="")

    alert: Mapped[Alert] = relationship(back_populates="activity_log")


class AlertNotification(Base):
    """Delivery ledger entry. Never affects the alert's lifecycle."""

    __tablename__ = "alert_notifications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    alert_id: Mapped[int] = mapped_column(ForeignKey("alerts.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    channel: Mapped[str] = mapped_column(String(10), nullable=False, default="socket")  # socket | email | sms | push
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="sent")  # sent | delivered | failed
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: clock.utcnow(),
        nullable=False,
    )

    alert: Mapped[Alert] = relationship(back_populates="notifications")
