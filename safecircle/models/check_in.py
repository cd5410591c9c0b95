"""Check-in model."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from safecircle.core import clock
from safecircle.db.base import Base


class CheckIn(Base):
    """Scheduled safety commitment: the owner expects to be back by a deadline."""

    __tablename__ = "check_ins"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    circle_id: Mapped[int] = mapped_column(ForeignKey("circles.id", ondelete="CASCADE"), index=True, nullable=False)

    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    expected_return_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # active | completed | overdue | cancelled

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completion_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion_status: Mapped[str | None] = mapped_column(String(20), nullable=True)  # on-time | early | late | auto-completed

    # [{"coordinates": [lng, lat], "timestamp": iso8601}], newest last
    location_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    notify_on_start: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_on_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_if_overdue: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    overdue_notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: clock.utcnow(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: clock.utcnow(),
        onupdate=lambda: clock.utcnow(),
        nullable=False,
    )

    acknowledgments: Mapped[list["CheckInAcknowledgment"]] = relationship(
        back_populates="check_in",
        cascade="all, delete-orphan",
        order_by="CheckInAcknowledgment.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}


class CheckInAcknowledgment(Base):
    """A circle member's acknowledgment of a check-in. One per member."""

    __tablename__ = "check_in_acknowledgments"
    __table_args__ = (
        UniqueConstraint("check_in_id", "user_id", name="uq_check_in_ack_check_in_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    check_in_id: Mapped[int] = mapped_column(ForeignKey("check_ins.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    acknowledged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    message: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    check_in: Mapped[CheckIn] = relationship(back_populates="acknowledgments")
