"""Circle model with embedded-style member and invite rows."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from safecircle.core import clock
from safecircle.core.policies import DEFAULT_MAX_MEMBERS
from safecircle.db.base import Base


class Circle(Base):
    """A named group of users sharing safety visibility."""

    __tablename__ = "circles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    invite_code: Mapped[str | None] = mapped_column(String(16), unique=True, nullable=True)
    invite_code_expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Settings
    require_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allow_member_invites: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_members: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_MAX_MEMBERS)
    auto_share_location: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Stats
    total_alerts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_check_ins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: clock.utcnow(),
        nullable=False,
    )

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

    members: Mapped[list["CircleMember"]] = relationship(
        back_populates="circle",
        cascade="all, delete-orphan",
        order_by="CircleMember.id",
        lazy="selectin",
    )
    pending_invites: Mapped[list["CircleInvite"]] = relationship(
        back_populates="circle",
        cascade="all, delete-orphan",
        order_by="CircleInvite.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}


class CircleMember(Base):
    """Membership row. Removal flips ``is_active``; rows are never deleted."""

    __tablename__ = "circle_members"
    __table_args__ = (
        UniqueConstraint("circle_id", "user_id", name="uq_circle_member_circle_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    circle_id: Mapped[int] = mapped_column(ForeignKey("circles.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    role: Mapped[str] = mapped_column(String(10), nullable=False, default="member")  # admin | member
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: clock.utcnow(),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    circle: Mapped[Circle] = relationship(back_populates="members")


class CircleInvite(Base):
    """Pending email invitation."""

    __tablename__ = "circle_invites"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    circle_id: Mapped[int] = mapped_column(ForeignKey("circles.id", ondelete="CASCADE"), index=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    invited_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    invited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: clock.utcnow(),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    circle: Mapped[Circle] = relationship(back_populates="pending_invites")
