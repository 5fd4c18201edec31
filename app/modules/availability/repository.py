"""Availability repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.availability.models import AvailabilitySlot
from app.modules.availability.schemas import SlotWindow
from app.shared.utils import utc_now


class AvailabilityRepository:
    """DB access for availability slots."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def replace_slots(self, provider_id: UUID, windows: list[SlotWindow]) -> list[AvailabilitySlot]:
        await self.session.execute(
            delete(AvailabilitySlot).where(AvailabilitySlot.provider_id == provider_id),
        )
        slots = [
            AvailabilitySlot(
                provider_id=provider_id,
                start_at=window.start_at,
                end_at=window.end_at,
                is_booked=False,
                is_paid=window.is_paid,
                price_per_session=window.price_per_session,
                description=window.description,
            )
            for window in windows
        ]
        self.session.add_all(slots)
        await self.session.flush()
        return slots

    async def get_slot_by_id(self, slot_id: UUID) -> AvailabilitySlot | None:
        stmt = select(AvailabilitySlot).where(AvailabilitySlot.id == slot_id)
        return await self.session.scalar(stmt)

    async def list_open_slots(self, provider_id: UUID) -> list[AvailabilitySlot]:
        stmt = (
            select(AvailabilitySlot)
            .where(
                AvailabilitySlot.provider_id == provider_id,
                AvailabilitySlot.is_booked.is_(False),
            )
            .order_by(AvailabilitySlot.start_at.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def mark_booked(self, slot_id: UUID) -> AvailabilitySlot | None:
        """Flip ``is_booked`` only if still open; None means another caller won."""
        stmt = (
            update(AvailabilitySlot)
            .where(AvailabilitySlot.id == slot_id, AvailabilitySlot.is_booked.is_(False))
            .values(is_booked=True, updated_at=utc_now())
            .returning(AvailabilitySlot)
            .execution_options(synchronize_session="fetch")
        )
        return await self.session.scalar(stmt)

    async def release_slot(self, slot_id: UUID) -> bool:
        stmt = (
            update(AvailabilitySlot)
            .where(AvailabilitySlot.id == slot_id, AvailabilitySlot.is_booked.is_(True))
            .values(is_booked=False, updated_at=utc_now())
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
