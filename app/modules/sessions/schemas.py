"""Scheduled session schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import SessionStatusEnum, SessionTypeEnum


class GroupSessionCreate(BaseModel):
    """Create group session request."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    start_time: str = Field(alias="startTime", min_length=1)
    end_time: str = Field(alias="endTime", min_length=1)
    is_paid: bool = Field(default=False, alias="isPaid")
    price: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    max_attendees: int | None = Field(default=None, ge=1, alias="maxAttendees")


class BookSessionRequest(BaseModel):
    """Book one-on-one slot request."""

    model_config = ConfigDict(populate_by_name=True)

    availability_id: UUID = Field(alias="availabilityId")


class EnrollGroupSessionRequest(BaseModel):
    """Enroll in group session request."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: UUID = Field(alias="sessionId")


class StudentSessionRead(BaseModel):
    """Session view for students: join link only, no host credentials."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider_id: UUID
    session_type: SessionTypeEnum
    title: str | None
    description: str | None
    start_at: datetime
    end_at: datetime
    status: SessionStatusEnum
    is_paid: bool
    price: Decimal | None
    max_attendees: int | None
    attendees_count: int = 0
    external_meeting_id: str | None
    join_url: str | None


class SessionRead(StudentSessionRead):
    """Session view for the hosting provider."""

    host_url: str | None
    access_code: str | None


class PaymentIntentRead(BaseModel):
    """Checkout hand-off returned instead of an enrollment for paid sessions."""

    checkout_session_id: str
