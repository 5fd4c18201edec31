from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from app.core.config import Settings
from app.core.enums import SessionStatusEnum, SessionTypeEnum
from app.modules.availability.schemas import SlotWindow
from app.modules.availability.service import AvailabilityService
from app.modules.meetings.schemas import MeetingRecord
from app.modules.sessions.service import SchedulingService
from app.shared.exceptions import MeetingProviderException


@dataclass
class FakeSlot:
    id: UUID
    provider_id: UUID
    start_at: datetime
    end_at: datetime
    is_booked: bool = False
    is_paid: bool = False
    price_per_session: Decimal | None = None
    description: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class FakeScheduledSession:
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
    external_meeting_id: str | None
    join_url: str | None
    host_url: str | None
    access_code: str | None


@dataclass
class FakeAttendee:
    id: UUID
    session_id: UUID
    student_id: UUID
    booking_time: datetime
    transaction_id: str | None = None


@dataclass
class FakeStore:
    slots: dict[UUID, FakeSlot] = field(default_factory=dict)
    sessions: dict[UUID, FakeScheduledSession] = field(default_factory=dict)
    attendees: list[FakeAttendee] = field(default_factory=list)

    def count(self, session_id: UUID) -> int:
        return sum(1 for attendee in self.attendees if attendee.session_id == session_id)


class FakeAvailabilityRepository:
    def __init__(self, store: FakeStore) -> None:
        self.store = store

    async def replace_slots(self, provider_id: UUID, windows: list[SlotWindow]) -> list[FakeSlot]:
        self.store.slots = {
            slot_id: slot for slot_id, slot in self.store.slots.items() if slot.provider_id != provider_id
        }
        created = [
            FakeSlot(
                id=uuid4(),
                provider_id=provider_id,
                start_at=window.start_at,
                end_at=window.end_at,
                is_paid=window.is_paid,
                price_per_session=window.price_per_session,
                description=window.description,
            )
            for window in windows
        ]
        self.store.slots.update({slot.id: slot for slot in created})
        return created

    async def get_slot_by_id(self, slot_id: UUID) -> FakeSlot | None:
        return self.store.slots.get(slot_id)

    async def list_open_slots(self, provider_id: UUID) -> list[FakeSlot]:
        return sorted(
            (
                slot
                for slot in self.store.slots.values()
                if slot.provider_id == provider_id and not slot.is_booked
            ),
            key=lambda slot: slot.start_at,
        )

    async def mark_booked(self, slot_id: UUID) -> FakeSlot | None:
        await asyncio.sleep(0)
        slot = self.store.slots.get(slot_id)
        if slot is None or slot.is_booked:
            return None
        slot.is_booked = True
        return slot

    async def release_slot(self, slot_id: UUID) -> bool:
        slot = self.store.slots.get(slot_id)
        if slot is None or not slot.is_booked:
            return False
        slot.is_booked = False
        return True


class FakeSessionRepository:
    def __init__(self, store: FakeStore) -> None:
        self.store = store
        self.fail_on_create: Exception | None = None

    async def create_session(self, *, meeting: MeetingRecord, **values) -> FakeScheduledSession:
        if self.fail_on_create is not None:
            raise self.fail_on_create
        scheduled = FakeScheduledSession(
            id=uuid4(),
            status=SessionStatusEnum.SCHEDULED,
            external_meeting_id=meeting.external_meeting_id,
            join_url=meeting.join_url,
            host_url=meeting.host_url,
            access_code=meeting.access_code,
            **values,
        )
        self.store.sessions[scheduled.id] = scheduled
        return scheduled

    async def get_session_by_id(self, session_id: UUID) -> FakeScheduledSession | None:
        return self.store.sessions.get(session_id)

    def _with_counts(self, sessions, *, descending: bool) -> list[tuple[FakeScheduledSession, int]]:
        ordered = sorted(sessions, key=lambda item: item.start_at, reverse=descending)
        return [(scheduled, self.store.count(scheduled.id)) for scheduled in ordered]

    async def list_open_group_sessions(self) -> list[tuple[FakeScheduledSession, int]]:
        return self._with_counts(
            (
                scheduled
                for scheduled in self.store.sessions.values()
                if scheduled.session_type == SessionTypeEnum.GROUP
                and scheduled.status == SessionStatusEnum.SCHEDULED
                and scheduled.max_attendees is not None
                and self.store.count(scheduled.id) < scheduled.max_attendees
            ),
            descending=False,
        )

    async def list_by_provider(self, provider_id: UUID) -> list[tuple[FakeScheduledSession, int]]:
        return self._with_counts(
            (item for item in self.store.sessions.values() if item.provider_id == provider_id),
            descending=True,
        )

    async def list_by_attendee(self, student_id: UUID) -> list[tuple[FakeScheduledSession, int]]:
        enrolled = {item.session_id for item in self.store.attendees if item.student_id == student_id}
        return self._with_counts(
            (item for item in self.store.sessions.values() if item.id in enrolled),
            descending=True,
        )


class FakeAttendeeRepository:
    """In-memory enrollments; ``capacity_guard`` serializes like a row lock."""

    def __init__(self, store: FakeStore) -> None:
        self.store = store
        self._locks: dict[UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def capacity_guard(self, session_id: UUID) -> AsyncIterator[None]:
        async with self._locks[session_id]:
            yield

    async def count_attendees(self, session_id: UUID) -> int:
        await asyncio.sleep(0)
        return self.store.count(session_id)

    async def is_enrolled(self, session_id: UUID, student_id: UUID) -> bool:
        return any(
            item.session_id == session_id and item.student_id == student_id
            for item in self.store.attendees
        )

    async def list_attendees(self, session_id: UUID) -> list[FakeAttendee]:
        return [item for item in self.store.attendees if item.session_id == session_id]

    async def add_attendee(self, session_id: UUID, student_id: UUID) -> FakeAttendee | None:
        await asyncio.sleep(0)
        if await self.is_enrolled(session_id, student_id):
            return None
        attendee = FakeAttendee(
            id=uuid4(),
            session_id=session_id,
            student_id=student_id,
            booking_time=datetime.now(UTC),
        )
        self.store.attendees.append(attendee)
        return attendee


class FakeMeetingProvider:
    def __init__(self) -> None:
        self.provisioned: list[dict] = []
        self.canceled: list[str] = []
        self.fail_with: MeetingProviderException | None = None

    async def provision(
        self,
        topic: str,
        category: str,
        start_at: datetime,
        duration_minutes: int,
    ) -> MeetingRecord:
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        number = len(self.provisioned) + 1
        self.provisioned.append(
            {
                "topic": topic,
                "category": category,
                "start_at": start_at,
                "duration_minutes": duration_minutes,
            },
        )
        return MeetingRecord(
            external_meeting_id=f"meeting-{number}",
            join_url=f"https://meet.example.com/j/{number}",
            host_url=f"https://meet.example.com/s/{number}",
            access_code=f"code{number}",
        )

    async def cancel(self, external_meeting_id: str) -> None:
        self.canceled.append(external_meeting_id)


@dataclass
class SchedulingWorld:
    store: FakeStore
    sessions: FakeSessionRepository
    attendees: FakeAttendeeRepository
    meetings: FakeMeetingProvider
    service: SchedulingService

    def add_slot(self, provider_id: UUID, **values) -> FakeSlot:
        start_at = values.pop("start_at", datetime.now(UTC) + timedelta(days=1))
        slot = FakeSlot(
            id=uuid4(),
            provider_id=provider_id,
            start_at=start_at,
            end_at=values.pop("end_at", start_at + timedelta(hours=1)),
            **values,
        )
        self.store.slots[slot.id] = slot
        return slot


@pytest.fixture
def scheduling_world() -> SchedulingWorld:
    settings = Settings(_env_file=None, default_timezone="UTC")
    store = FakeStore()
    sessions = FakeSessionRepository(store)
    attendees = FakeAttendeeRepository(store)
    meetings = FakeMeetingProvider()
    checkout_ids = iter(f"checkout_test_{index}" for index in range(1, 100))
    service = SchedulingService(
        session_repository=sessions,
        attendee_repository=attendees,
        availability_service=AvailabilityService(FakeAvailabilityRepository(store), settings=settings),
        meeting_provider=meetings,
        settings=settings,
        payment_intent_factory=lambda: next(checkout_ids),
    )
    return SchedulingWorld(
        store=store,
        sessions=sessions,
        attendees=attendees,
        meetings=meetings,
        service=service,
    )
