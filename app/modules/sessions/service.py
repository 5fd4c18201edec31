"""Booking orchestration: one-on-one booking, group sessions and enrollment."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.database import get_db_session
from app.core.enums import RoleEnum, SessionTypeEnum
from app.core.metrics import record_booking_conflict
from app.modules.availability.repository import AvailabilityRepository
from app.modules.availability.service import AvailabilityService
from app.modules.identity.schemas import Principal
from app.modules.meetings.schemas import MeetingRecord
from app.modules.meetings.service import MeetingProvider, get_meeting_provider
from app.modules.sessions.models import ScheduledSession
from app.modules.sessions.repository import AttendeeRepository, SessionRepository
from app.modules.sessions.schemas import (
    GroupSessionCreate,
    PaymentIntentRead,
    SessionRead,
    StudentSessionRead,
)
from app.shared.exceptions import (
    BadRequestException,
    ConflictException,
    MeetingProviderException,
    NotFoundException,
    ValidationException,
)
from app.shared.identifiers import normalize_identifier
from app.shared.utils import duration_minutes, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

ONE_ON_ONE_DEFAULT_TITLE = "One-on-One Session"
ONE_ON_ONE_CATEGORY = "Individual Tutoring"
GROUP_CATEGORY = "Group Session"


def generate_checkout_session_id() -> str:
    """Opaque payment hand-off token."""
    return f"checkout_{int(utc_now().timestamp() * 1000)}_{secrets.token_hex(6)}"


def to_student_view(scheduled: ScheduledSession, attendees_count: int) -> StudentSessionRead:
    return StudentSessionRead.model_validate(scheduled).model_copy(
        update={"attendees_count": attendees_count},
    )


def to_provider_view(scheduled: ScheduledSession, attendees_count: int) -> SessionRead:
    return SessionRead.model_validate(scheduled).model_copy(
        update={"attendees_count": attendees_count},
    )


class SchedulingService:
    """Coordinates slots, meetings, sessions and enrollments.

    Every workflow validates input and store state first, then acquires the
    external meeting, then persists. When a one-on-one booking fails after
    the slot flip, the slot is released and any provisioned meeting is
    canceled before the original error propagates.
    """

    def __init__(
        self,
        session_repository: SessionRepository,
        attendee_repository: AttendeeRepository,
        availability_service: AvailabilityService,
        meeting_provider: MeetingProvider,
        settings: Settings | None = None,
        payment_intent_factory: Callable[[], str] = generate_checkout_session_id,
    ) -> None:
        self.session_repository = session_repository
        self.attendee_repository = attendee_repository
        self.availability_service = availability_service
        self.meeting_provider = meeting_provider
        self.settings = settings or get_settings()
        self.payment_intent_factory = payment_intent_factory

    async def get_session(self, session_id: UUID) -> ScheduledSession:
        scheduled = await self.session_repository.get_session_by_id(session_id)
        if scheduled is None:
            raise NotFoundException("Session not found")
        return scheduled

    @staticmethod
    def _is_full(scheduled: ScheduledSession, attendees_count: int) -> bool:
        return scheduled.max_attendees is not None and attendees_count >= scheduled.max_attendees

    async def create_group_session(
        self,
        teacher_id: str | UUID,
        payload: GroupSessionCreate,
    ) -> SessionRead:
        """Provision a meeting for the window, then persist the group session."""
        teacher_uuid = normalize_identifier(teacher_id)
        zone = self.settings.default_zone
        try:
            start_at = parse_timestamp(payload.start_time, zone)
            end_at = parse_timestamp(payload.end_time, zone)
        except ValueError as exc:
            raise ValidationException("startTime and endTime must be valid ISO dates") from exc
        if start_at >= end_at:
            raise ValidationException("startTime must be before endTime")

        meeting = await self.meeting_provider.provision(
            payload.title,
            GROUP_CATEGORY,
            start_at,
            duration_minutes(start_at, end_at),
        )

        scheduled = await self.session_repository.create_session(
            provider_id=teacher_uuid,
            session_type=SessionTypeEnum.GROUP,
            title=payload.title,
            description=payload.description,
            start_at=start_at,
            end_at=end_at,
            is_paid=payload.is_paid,
            price=payload.price,
            max_attendees=payload.max_attendees or self.settings.group_session_default_max_attendees,
            meeting=meeting,
        )
        logger.info("Created group session %s for provider %s", scheduled.id, teacher_uuid)
        return to_provider_view(scheduled, 0)

    async def book_slot(self, student_id: str | UUID, slot_id: UUID) -> StudentSessionRead:
        """Book an availability slot as a one-on-one session."""
        student_uuid = normalize_identifier(student_id)

        slot = await self.availability_service.get_slot(slot_id)
        if slot.is_booked:
            record_booking_conflict("book_slot")
            raise ConflictException("This time slot is already booked")

        try:
            slot = await self.availability_service.mark_booked(slot_id)
        except ConflictException:
            record_booking_conflict("book_slot")
            raise

        title = slot.description or ONE_ON_ONE_DEFAULT_TITLE
        meeting: MeetingRecord | None = None
        try:
            meeting = await self.meeting_provider.provision(
                title,
                ONE_ON_ONE_CATEGORY,
                slot.start_at,
                duration_minutes(slot.start_at, slot.end_at),
            )
            scheduled = await self.session_repository.create_session(
                provider_id=slot.provider_id,
                session_type=SessionTypeEnum.ONE_ON_ONE,
                title=title,
                description=slot.description,
                start_at=slot.start_at,
                end_at=slot.end_at,
                is_paid=slot.is_paid,
                price=slot.price_per_session,
                max_attendees=1,
                meeting=meeting,
            )
            attendee = await self.attendee_repository.add_attendee(scheduled.id, student_uuid)
            if attendee is None:
                raise ConflictException("Student is already enrolled in this session")
        except Exception:
            await self._compensate_failed_booking(slot_id, meeting)
            raise

        logger.info("Student %s booked slot %s as session %s", student_uuid, slot_id, scheduled.id)
        return to_student_view(scheduled, 1)

    async def _compensate_failed_booking(
        self,
        slot_id: UUID,
        meeting: MeetingRecord | None,
    ) -> None:
        if meeting is not None:
            try:
                await self.meeting_provider.cancel(meeting.external_meeting_id)
            except MeetingProviderException:
                logger.exception(
                    "Could not cancel meeting %s after failed booking of slot %s",
                    meeting.external_meeting_id,
                    slot_id,
                )
        try:
            await self.availability_service.release_slot(slot_id)
        except Exception:
            logger.exception("Could not release slot %s after failed booking", slot_id)

    async def enroll(
        self,
        student_id: str | UUID,
        session_id: UUID,
    ) -> StudentSessionRead | PaymentIntentRead:
        """Enroll a student in a group session, or hand off to checkout if paid."""
        student_uuid = normalize_identifier(student_id)
        scheduled = await self.get_session(session_id)
        if scheduled.session_type != SessionTypeEnum.GROUP:
            raise BadRequestException("This endpoint is only for group sessions")

        if self._is_full(scheduled, await self.attendee_repository.count_attendees(scheduled.id)):
            record_booking_conflict("enroll")
            raise ConflictException("Session is full")
        if await self.attendee_repository.is_enrolled(scheduled.id, student_uuid):
            record_booking_conflict("enroll")
            raise ConflictException("Student is already enrolled in this session")

        if scheduled.is_paid:
            checkout_session_id = self.payment_intent_factory()
            logger.info(
                "Deferred enrollment of student %s in paid session %s to checkout",
                student_uuid,
                scheduled.id,
            )
            return PaymentIntentRead(checkout_session_id=checkout_session_id)

        attendees_count = await self.enroll_attendee(scheduled, student_uuid)
        logger.info("Student %s enrolled in group session %s", student_uuid, scheduled.id)
        return to_student_view(scheduled, attendees_count)

    async def enroll_attendee(self, scheduled: ScheduledSession, student_id: UUID) -> int:
        """Re-check capacity and insert under the session lock; return the new count."""
        async with self.attendee_repository.capacity_guard(scheduled.id):
            if self._is_full(scheduled, await self.attendee_repository.count_attendees(scheduled.id)):
                record_booking_conflict("enroll")
                raise ConflictException("Session is full")
            attendee = await self.attendee_repository.add_attendee(scheduled.id, student_id)
            if attendee is None:
                record_booking_conflict("enroll")
                raise ConflictException("Student is already enrolled in this session")
            return await self.attendee_repository.count_attendees(scheduled.id)

    async def list_open_group_sessions(self) -> list[StudentSessionRead]:
        """Group sessions still accepting students, earliest first."""
        rows = await self.session_repository.list_open_group_sessions()
        return [to_student_view(scheduled, count) for scheduled, count in rows]

    async def list_provider_sessions(self, provider_id: str | UUID) -> list[SessionRead]:
        rows = await self.session_repository.list_by_provider(normalize_identifier(provider_id))
        return [to_provider_view(scheduled, count) for scheduled, count in rows]

    async def list_student_sessions(self, student_id: str | UUID) -> list[StudentSessionRead]:
        rows = await self.session_repository.list_by_attendee(normalize_identifier(student_id))
        return [to_student_view(scheduled, count) for scheduled, count in rows]

    async def list_my_sessions(self, principal: Principal) -> list[SessionRead] | list[StudentSessionRead]:
        """Sessions of the caller, most recent first, redacted by role."""
        if principal.role == RoleEnum.TEACHER:
            return await self.list_provider_sessions(principal.caller_id)
        return await self.list_student_sessions(principal.caller_id)


async def get_scheduling_service(
    session: AsyncSession = Depends(get_db_session),
    meeting_provider: MeetingProvider = Depends(get_meeting_provider),
) -> SchedulingService:
    """Dependency provider for scheduling service."""
    return SchedulingService(
        session_repository=SessionRepository(session),
        attendee_repository=AttendeeRepository(session),
        availability_service=AvailabilityService(AvailabilityRepository(session)),
        meeting_provider=meeting_provider,
    )
