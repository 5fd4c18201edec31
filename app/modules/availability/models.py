"""Availability ORM models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, Numeric, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin


class AvailabilitySlot(BaseModelMixin, Base):
    """Provider time window that a student can book one-on-one."""

    __tablename__ = "availability_slots"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="window_order"),
        CheckConstraint(
            "price_per_session IS NULL OR price_per_session >= 0",
            name="price_non_negative",
        ),
    )

    provider_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_booked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    price_per_session: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
