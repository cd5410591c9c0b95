"""User model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from safecircle.core import clock
from safecircle.db.base import Base


class User(Base):
    """Registered user with credentials, profile, privacy flags and last location."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    phone: Mapped[str] = mapped_column(String(30), nullable=False, default="")
    bio: Mapped[str] = mapped_column(Text, nullable=False, default="")
    profile_photo: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # Privacy settings
    share_location_with_circles: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_check_in_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_alert_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    visible_to_circle_members: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Last known location, [longitude, latitude] order on the wire
    is_location_sharing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_address: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    last_location_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Login security
    refresh_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lock_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

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

    emergency_contacts: Mapped[list["EmergencyContact"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="EmergencyContact.id",
    )

    def is_locked(self, now: datetime | None = None) -> bool:
        lock_until = clock.as_utc(self.lock_until)
        return lock_until is not None and lock_until > (now or clock.utcnow())


class EmergencyContact(Base):
    """Out-of-band contact a user keeps on file."""

    __tablename__ = "emergency_contacts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str] = mapped_column(String(30), nullable=False)
    relationship_label: Mapped[str] = mapped_column("relationship", String(50), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    user: Mapped[User] = relationship(back_populates="emergency_contacts")
