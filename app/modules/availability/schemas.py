"""Availability schemas."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AvailabilitySlotInput(BaseModel):
    """Single slot in a replace-availability request.

    Timestamps stay strings here: values without an offset are interpreted in
    the configured default zone by the service.
    """

    model_config = ConfigDict(populate_by_name=True)

    start_time: str = Field(alias="startTime", min_length=1)
    end_time: str = Field(alias="endTime", min_length=1)
    is_paid: bool = Field(default=False, alias="isPaid")
    price: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    description: str | None = Field(
        default=None,
        alias="sessionDescription",
        max_length=500,
    )


class AvailabilityReplaceRequest(BaseModel):
    """Replace all availability of the calling provider."""

    availabilities: list[AvailabilitySlotInput]


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


@dataclass(slots=True)
class SlotWindow:
    """Validated slot ready to be persisted."""

    start_at: datetime
    end_at: datetime
    is_paid: bool
    price_per_session: Decimal | None
    description: str | None


class SlotRead(BaseModel):
    """Availability slot response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider_id: UUID
    start_at: datetime
    end_at: datetime
    is_booked: bool
    is_paid: bool
    price_per_session: Decimal | None
    description: str | None
    created_at: datetime
    updated_at: datetime
