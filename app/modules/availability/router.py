"""Availability API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.enums import PermissionEnum, RoleEnum
from app.modules.availability.schemas import AvailabilityReplaceRequest, MessageResponse, SlotRead
from app.modules.availability.service import AvailabilityService, get_availability_service
from app.modules.identity.schemas import Principal
from app.modules.identity.service import require_access

router = APIRouter(prefix="/availability", tags=["availability"])


@router.put("/me", response_model=MessageResponse)
async def replace_my_availability(
    payload: AvailabilityReplaceRequest,
    service: AvailabilityService = Depends(get_availability_service),
    principal: Principal = Depends(
        require_access(RoleEnum.TEACHER, permission=PermissionEnum.MANAGE_AVAILABILITY),
    ),
) -> MessageResponse:
    """Replace all availability slots of the calling teacher."""
    result = await service.replace_availability(principal.external_id, payload.availabilities)
    return MessageResponse(**result)


@router.get("/providers/{provider_id}/open", response_model=list[SlotRead])
async def list_open_slots(
    provider_id: str,
    service: AvailabilityService = Depends(get_availability_service),
    _: Principal = Depends(
        require_access(
            RoleEnum.TEACHER,
            RoleEnum.STUDENT,
            permission=PermissionEnum.VIEW_AVAILABILITY,
        ),
    ),
) -> list[SlotRead]:
    """List open slots of a provider ordered by start time."""
    slots = await service.list_open_slots(provider_id)
    return [SlotRead.model_validate(slot) for slot in slots]
