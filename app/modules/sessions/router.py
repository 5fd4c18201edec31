"""Scheduling API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.core.enums import PermissionEnum, RoleEnum
from app.modules.identity.schemas import Principal
from app.modules.identity.service import require_access
from app.modules.sessions.schemas import (
    BookSessionRequest,
    EnrollGroupSessionRequest,
    GroupSessionCreate,
    PaymentIntentRead,
    SessionRead,
    StudentSessionRead,
)
from app.modules.sessions.service import SchedulingService, get_scheduling_service

router = APIRouter(prefix="/scheduling", tags=["scheduling"])


@router.post("/group-sessions", response_model=SessionRead, status_code=status.HTTP_201_CREATED)
async def create_group_session(
    payload: GroupSessionCreate,
    service: SchedulingService = Depends(get_scheduling_service),
    principal: Principal = Depends(
        require_access(RoleEnum.TEACHER, permission=PermissionEnum.CREATE_SESSION),
    ),
) -> SessionRead:
    """Create group session with a provisioned meeting."""
    return await service.create_group_session(principal.caller_id, payload)


@router.get("/group-sessions", response_model=list[StudentSessionRead])
async def list_group_sessions(
    service: SchedulingService = Depends(get_scheduling_service),
    _: Principal = Depends(
        require_access(
            RoleEnum.TEACHER,
            RoleEnum.STUDENT,
            permission=PermissionEnum.VIEW_SESSIONS,
        ),
    ),
) -> list[StudentSessionRead]:
    """List group sessions that still have free seats."""
    return await service.list_open_group_sessions()


@router.post("/book-session", response_model=StudentSessionRead, status_code=status.HTTP_201_CREATED)
async def book_session(
    payload: BookSessionRequest,
    service: SchedulingService = Depends(get_scheduling_service),
    principal: Principal = Depends(
        require_access(RoleEnum.STUDENT, permission=PermissionEnum.BOOK_SESSION),
    ),
) -> StudentSessionRead:
    """Book a one-on-one session from an availability slot."""
    return await service.book_slot(principal.caller_id, payload.availability_id)


@router.post(
    "/enroll-group-session",
    response_model=StudentSessionRead | PaymentIntentRead,
)
async def enroll_group_session(
    payload: EnrollGroupSessionRequest,
    service: SchedulingService = Depends(get_scheduling_service),
    principal: Principal = Depends(
        require_access(RoleEnum.STUDENT, permission=PermissionEnum.ENROLL_SESSION),
    ),
) -> StudentSessionRead | PaymentIntentRead:
    """Enroll in a free group session or receive a checkout token for a paid one."""
    return await service.enroll(principal.caller_id, payload.session_id)


@router.get("/me/sessions", response_model=None)
async def list_my_sessions(
    service: SchedulingService = Depends(get_scheduling_service),
    principal: Principal = Depends(
        require_access(
            RoleEnum.TEACHER,
            RoleEnum.STUDENT,
            permission=PermissionEnum.VIEW_MY_SESSIONS,
        ),
    ),
) -> list[SessionRead] | list[StudentSessionRead]:
    """List sessions of the caller.

    Teachers get the provider view with host credentials; students get the
    join-only view. Each item is serialized with its own schema.
    """
    return await service.list_my_sessions(principal)
