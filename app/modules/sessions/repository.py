"""Scheduled session and attendee repository layer."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import SessionStatusEnum, SessionTypeEnum
from app.modules.meetings.schemas import MeetingRecord
from app.modules.sessions.models import ScheduledSession, SessionAttendee
from app.shared.utils import utc_now


def _attendee_count_column():
    return (
        select(func.count(SessionAttendee.id))
        .where(SessionAttendee.session_id == ScheduledSession.id)
        .correlate(ScheduledSession)
        .scalar_subquery()
    )


class SessionRepository:
    """DB operations for scheduled sessions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_session(
        self,
        *,
        provider_id: UUID,
        session_type: SessionTypeEnum,
        title: str | None,
        description: str | None,
        start_at: datetime,
        end_at: datetime,
        is_paid: bool,
        price: Decimal | None,
        max_attendees: int | None,
        meeting: MeetingRecord,
    ) -> ScheduledSession:
        scheduled = ScheduledSession(
            provider_id=provider_id,
            session_type=session_type,
            title=title,
            description=description,
            start_at=start_at,
            end_at=end_at,
            status=SessionStatusEnum.SCHEDULED,
            is_paid=is_paid,
            price=price,
            max_attendees=max_attendees,
            external_meeting_id=meeting.external_meeting_id,
            join_url=meeting.join_url,
            host_url=meeting.host_url,
            access_code=meeting.access_code,
        )
        self.session.add(scheduled)
        await self.session.flush()
        return scheduled

    async def get_session_by_id(self, session_id: UUID) -> ScheduledSession | None:
        stmt = select(ScheduledSession).where(ScheduledSession.id == session_id)
        return await self.session.scalar(stmt)

    async def _with_counts(self, stmt: Select) -> list[tuple[ScheduledSession, int]]:
        rows = (await self.session.execute(stmt)).all()
        return [(row[0], int(row[1] or 0)) for row in rows]

    async def list_open_group_sessions(self) -> list[tuple[ScheduledSession, int]]:
        attendees_count = _attendee_count_column()
        stmt = (
            select(ScheduledSession, attendees_count)
            .where(
                ScheduledSession.session_type == SessionTypeEnum.GROUP,
                ScheduledSession.status == SessionStatusEnum.SCHEDULED,
                ScheduledSession.max_attendees.is_not(None),
                attendees_count < ScheduledSession.max_attendees,
            )
            .order_by(ScheduledSession.start_at.asc())
        )
        return await self._with_counts(stmt)

    async def list_by_provider(self, provider_id: UUID) -> list[tuple[ScheduledSession, int]]:
        stmt = (
            select(ScheduledSession, _attendee_count_column())
            .where(ScheduledSession.provider_id == provider_id)
            .order_by(ScheduledSession.start_at.desc())
        )
        return await self._with_counts(stmt)

    async def list_by_attendee(self, student_id: UUID) -> list[tuple[ScheduledSession, int]]:
        enrolled = select(SessionAttendee.session_id).where(SessionAttendee.student_id == student_id)
        stmt = (
            select(ScheduledSession, _attendee_count_column())
            .where(ScheduledSession.id.in_(enrolled))
            .order_by(ScheduledSession.start_at.desc())
        )
        return await self._with_counts(stmt)


class AttendeeRepository:
    """DB operations for session enrollments."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def capacity_guard(self, session_id: UUID) -> AsyncIterator[None]:
        """Serialize enrollers of one session.

        The row lock lives until the surrounding transaction ends, so the
        count-then-insert sequence inside the block cannot interleave.
        """
        await self.session.execute(
            select(ScheduledSession.id).where(ScheduledSession.id == session_id).with_for_update(),
        )
        yield

    async def count_attendees(self, session_id: UUID) -> int:
        stmt = select(func.count(SessionAttendee.id)).where(SessionAttendee.session_id == session_id)
        return int((await self.session.scalar(stmt)) or 0)

    async def is_enrolled(self, session_id: UUID, student_id: UUID) -> bool:
        stmt = select(SessionAttendee.id).where(
            SessionAttendee.session_id == session_id,
            SessionAttendee.student_id == student_id,
        )
        return (await self.session.scalar(stmt)) is not None

    async def list_attendees(self, session_id: UUID) -> list[SessionAttendee]:
        stmt = (
            select(SessionAttendee)
            .where(SessionAttendee.session_id == session_id)
            .order_by(SessionAttendee.booking_time.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def add_attendee(self, session_id: UUID, student_id: UUID) -> SessionAttendee | None:
        """Insert enrollment; None when the (session, student) pair already exists."""
        attendee = SessionAttendee(
            session_id=session_id,
            student_id=student_id,
            booking_time=utc_now(),
        )
        try:
            async with self.session.begin_nested():
                self.session.add(attendee)
                await self.session.flush()
        except IntegrityError:
            return None
        return attendee
