"""Availability business logic layer."""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.database import get_db_session
from app.modules.availability.models import AvailabilitySlot
from app.modules.availability.repository import AvailabilityRepository
from app.modules.availability.schemas import AvailabilitySlotInput, SlotWindow
from app.shared.exceptions import ConflictException, NotFoundException, ValidationException
from app.shared.identifiers import normalize_identifier
from app.shared.utils import format_local, parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Availability domain service: wholesale replace and the one-way booking flip."""

    def __init__(self, repository: AvailabilityRepository, settings: Settings | None = None) -> None:
        self.repository = repository
        self.settings = settings or get_settings()

    def _validate_slot(self, slot: AvailabilitySlotInput) -> SlotWindow:
        zone = self.settings.default_zone
        try:
            start_at = parse_timestamp(slot.start_time, zone)
            end_at = parse_timestamp(slot.end_time, zone)
        except ValueError as exc:
            raise ValidationException("startTime and endTime must be valid ISO dates") from exc

        if start_at >= end_at:
            raise ValidationException("startTime must be before endTime")

        now = utc_now()
        lead_minutes = self.settings.availability_lead_minutes
        if start_at <= now + timedelta(minutes=lead_minutes):
            raise ValidationException(
                "Cannot create availability in the past. "
                f"Start time {format_local(start_at, zone)} must be at least {lead_minutes} "
                f"minutes after current time {format_local(now, zone)}.",
            )

        return SlotWindow(
            start_at=start_at,
            end_at=end_at,
            is_paid=slot.is_paid,
            price_per_session=slot.price,
            description=slot.description,
        )

    async def replace_availability(
        self,
        provider_id: str | UUID,
        slots: list[AvailabilitySlotInput],
    ) -> dict[str, str]:
        """Validate the whole batch, then swap the provider's slots for it."""
        provider_uuid = normalize_identifier(provider_id)
        windows = [self._validate_slot(slot) for slot in slots]

        await self.repository.replace_slots(provider_uuid, windows)
        logger.info("Replaced availability for provider %s with %d slots", provider_uuid, len(windows))
        return {"message": "Availability updated."}

    async def list_open_slots(self, provider_id: str | UUID) -> list[AvailabilitySlot]:
        """List unbooked slots for provider, earliest first."""
        return await self.repository.list_open_slots(normalize_identifier(provider_id))

    async def get_slot(self, slot_id: UUID) -> AvailabilitySlot:
        slot = await self.repository.get_slot_by_id(slot_id)
        if slot is None:
            raise NotFoundException("Availability slot not found")
        return slot

    async def mark_booked(self, slot_id: UUID) -> AvailabilitySlot:
        """Atomically move slot from open to booked."""
        slot = await self.repository.mark_booked(slot_id)
        if slot is not None:
            return slot
        if await self.repository.get_slot_by_id(slot_id) is None:
            raise NotFoundException("Availability slot not found")
        raise ConflictException("This time slot is already booked")

    async def release_slot(self, slot_id: UUID) -> None:
        """Undo a booking flip after a failed booking workflow."""
        released = await self.repository.release_slot(slot_id)
        if released:
            logger.warning("Released slot %s after failed booking", slot_id)


async def get_availability_service(
    session: AsyncSession = Depends(get_db_session),
) -> AvailabilityService:
    """Dependency provider for availability service."""
    return AvailabilityService(AvailabilityRepository(session))
