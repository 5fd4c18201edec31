"""SQL repository tests on an in-memory SQLite database."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.modules  # noqa: F401
import app.modules.sessions.repository as sessions_repository_module
from app.core.config import Settings
from app.core.database import Base
from app.core.enums import SessionTypeEnum
from app.modules.availability.repository import AvailabilityRepository
from app.modules.availability.schemas import SlotWindow
from app.modules.availability.service import AvailabilityService
from app.modules.meetings.schemas import MeetingRecord
from app.modules.sessions.repository import AttendeeRepository, SessionRepository
from app.modules.sessions.schemas import GroupSessionCreate
from app.modules.sessions.service import SchedulingService
from app.shared.exceptions import ConflictException
from app.shared.identifiers import normalize_identifier

START_AT = datetime(2030, 3, 1, 10, 0, tzinfo=UTC)


class StubMeetingProvider:
    def __init__(self) -> None:
        self.provisioned = 0

    async def provision(
        self,
        topic: str,
        category: str,
        start_at: datetime,
        duration_minutes: int,
    ) -> MeetingRecord:
        self.provisioned += 1
        return MeetingRecord(
            external_meeting_id=f"meeting-{self.provisioned}",
            join_url=f"https://meet.example.com/j/{self.provisioned}",
            host_url=f"https://meet.example.com/s/{self.provisioned}",
            access_code="code",
        )

    async def cancel(self, external_meeting_id: str) -> None:
        return None


@pytest_asyncio.fixture
async def db_session() -> AsyncIterator[AsyncSession]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)

    # SAVEPOINT requires BEGIN to be emitted by SQLAlchemy, not by the driver.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(connection) -> None:
        connection.exec_driver_sql("BEGIN")

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


def _meeting() -> MeetingRecord:
    return MeetingRecord(
        external_meeting_id="meeting-1",
        join_url="https://meet.example.com/j/1",
        host_url="https://meet.example.com/s/1",
        access_code="code",
    )


async def _group_session(session: AsyncSession, max_attendees: int | None = 2):
    return await SessionRepository(session).create_session(
        provider_id=normalize_identifier("teacher-1"),
        session_type=SessionTypeEnum.GROUP,
        title="Statistics clinic",
        description=None,
        start_at=START_AT,
        end_at=START_AT + timedelta(hours=1),
        is_paid=False,
        price=None,
        max_attendees=max_attendees,
        meeting=_meeting(),
    )


@pytest.mark.asyncio
async def test_mark_booked_flips_only_an_open_slot(db_session: AsyncSession) -> None:
    repository = AvailabilityRepository(db_session)
    (slot,) = await repository.replace_slots(
        normalize_identifier("teacher-1"),
        [
            SlotWindow(
                start_at=START_AT,
                end_at=START_AT + timedelta(hours=1),
                is_paid=True,
                price_per_session=Decimal("20.00"),
                description="Geometry",
            ),
        ],
    )
    slot_id = slot.id

    booked = await repository.mark_booked(slot_id)
    assert booked is not None
    assert booked.is_booked is True

    assert await repository.mark_booked(slot_id) is None
    assert await repository.list_open_slots(normalize_identifier("teacher-1")) == []

    assert await repository.release_slot(slot_id) is True
    assert await repository.release_slot(slot_id) is False
    assert await repository.mark_booked(slot_id) is not None


@pytest.mark.asyncio
async def test_duplicate_attendee_insert_returns_none_and_keeps_session_usable(
    db_session: AsyncSession,
) -> None:
    scheduled = await _group_session(db_session)
    session_id = scheduled.id
    attendees = AttendeeRepository(db_session)
    student_id = normalize_identifier("student-1")

    assert await attendees.add_attendee(session_id, student_id) is not None
    assert await attendees.add_attendee(session_id, student_id) is None

    assert await attendees.count_attendees(session_id) == 1
    assert await attendees.is_enrolled(session_id, student_id) is True
    assert await attendees.add_attendee(session_id, normalize_identifier("student-2")) is not None
    assert await attendees.count_attendees(session_id) == 2


@pytest.mark.asyncio
async def test_list_attendees_is_ordered_by_booking_time(
    db_session: AsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    scheduled = await _group_session(db_session, max_attendees=5)
    booking_times = iter(
        [
            START_AT - timedelta(days=1),
            START_AT - timedelta(days=3),
            START_AT - timedelta(days=2),
        ],
    )
    monkeypatch.setattr(sessions_repository_module, "utc_now", lambda: next(booking_times))
    attendees = AttendeeRepository(db_session)
    for name in ("student-late", "student-early", "student-middle"):
        await attendees.add_attendee(scheduled.id, normalize_identifier(name))

    listed = await attendees.list_attendees(scheduled.id)

    assert [item.student_id for item in listed] == [
        normalize_identifier("student-early"),
        normalize_identifier("student-middle"),
        normalize_identifier("student-late"),
    ]


@pytest.mark.asyncio
async def test_full_group_session_leaves_open_listing(db_session: AsyncSession) -> None:
    scheduled = await _group_session(db_session, max_attendees=1)
    unbounded = await _group_session(db_session, max_attendees=None)
    sessions = SessionRepository(db_session)

    rows = await sessions.list_open_group_sessions()
    assert [(item.id, count) for item, count in rows] == [(scheduled.id, 0)]

    await AttendeeRepository(db_session).add_attendee(scheduled.id, normalize_identifier("student-1"))

    assert await sessions.list_open_group_sessions() == []
    provider_rows = await sessions.list_by_provider(normalize_identifier("teacher-1"))
    assert {item.id: count for item, count in provider_rows} == {scheduled.id: 1, unbounded.id: 0}


@pytest.mark.asyncio
async def test_enrollment_through_service_stops_at_capacity(db_session: AsyncSession) -> None:
    settings = Settings(_env_file=None, default_timezone="UTC")
    service = SchedulingService(
        session_repository=SessionRepository(db_session),
        attendee_repository=AttendeeRepository(db_session),
        availability_service=AvailabilityService(AvailabilityRepository(db_session), settings=settings),
        meeting_provider=StubMeetingProvider(),
        settings=settings,
    )
    created = await service.create_group_session(
        "teacher-1",
        GroupSessionCreate.model_validate(
            {
                "title": "Essay workshop",
                "startTime": "2030-03-02T10:00:00Z",
                "endTime": "2030-03-02T11:00:00Z",
                "maxAttendees": 2,
            },
        ),
    )

    assert (await service.enroll("student-1", created.id)).attendees_count == 1
    assert (await service.enroll("student-2", created.id)).attendees_count == 2
    with pytest.raises(ConflictException, match="Session is full"):
        await service.enroll("student-3", created.id)

    (mine,) = await service.list_student_sessions("student-2")
    assert mine.id == created.id
    assert mine.attendees_count == 2
