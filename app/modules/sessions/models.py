"""Scheduled session ORM models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin
from app.core.enums import SessionStatusEnum, SessionTypeEnum
from app.shared.utils import utc_now


class ScheduledSession(BaseModelMixin, Base):
    """One-on-one or group session with its vendor meeting."""

    __tablename__ = "scheduled_sessions"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="window_order"),
        CheckConstraint("max_attendees IS NULL OR max_attendees >= 1", name="capacity_positive"),
    )

    provider_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    session_type: Mapped[SessionTypeEnum] = mapped_column(
        SAEnum(SessionTypeEnum, name="session_type_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[SessionStatusEnum] = mapped_column(
        SAEnum(SessionStatusEnum, name="session_status_enum", native_enum=False),
        default=SessionStatusEnum.SCHEDULED,
        nullable=False,
        index=True,
    )
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    max_attendees: Mapped[int | None] = mapped_column(Integer, nullable=True)

    external_meeting_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    join_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    host_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    access_code: Mapped[str | None] = mapped_column(String(50), nullable=True)


class SessionAttendee(BaseModelMixin, Base):
    """Student enrollment in a scheduled session."""

    __tablename__ = "session_attendees"
    __table_args__ = (UniqueConstraint("session_id", "student_id"),)

    session_id: Mapped[UUID] = mapped_column(
        ForeignKey("scheduled_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    booking_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
