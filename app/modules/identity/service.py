"""Caller identity resolution and capability checks.

Authentication happens upstream: the gateway verifies credentials and
forwards ``X-User-Id``, ``X-User-Role`` and ``X-User-Permissions``. This
module trusts those headers, turns them into a :class:`Principal` and gates
routes by role and permission.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from fastapi import Depends, Header

from app.core.enums import PermissionEnum, RoleEnum
from app.modules.identity.schemas import Principal
from app.shared.exceptions import ForbiddenException, UnauthorizedException
from app.shared.identifiers import normalize_identifier

logger = logging.getLogger(__name__)


def parse_permissions(raw: str | None) -> frozenset[PermissionEnum]:
    """Parse comma-separated permissions, ignoring unknown tokens."""
    if not raw:
        return frozenset()
    known = {item.value for item in PermissionEnum}
    return frozenset(
        PermissionEnum(token)
        for token in (part.strip().lower() for part in raw.split(","))
        if token in known
    )


def build_principal(
    user_id: str | None,
    role: str | None,
    permissions: str | None,
) -> Principal:
    """Build principal from gateway-supplied values."""
    if not user_id or not user_id.strip() or not role or not role.strip():
        raise UnauthorizedException("Missing user authentication headers")

    role_value = role.strip().lower()
    try:
        role_name = RoleEnum(role_value)
    except ValueError as exc:
        raise UnauthorizedException(f"Invalid user role: {role.strip()}") from exc

    external_id = user_id.strip()
    return Principal(
        external_id=external_id,
        caller_id=normalize_identifier(external_id),
        role=role_name,
        permissions=parse_permissions(permissions),
    )


async def get_current_principal(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_user_permissions: str | None = Header(default=None),
) -> Principal:
    """Resolve the calling principal from gateway headers."""
    return build_principal(x_user_id, x_user_role, x_user_permissions)


def ensure_access(
    principal: Principal,
    roles: tuple[RoleEnum, ...],
    permission: PermissionEnum,
) -> Principal:
    """Raise ForbiddenException unless principal has one of ``roles`` and ``permission``."""
    if principal.role not in roles:
        allowed = ", ".join(role.value for role in roles)
        raise ForbiddenException(f"Operation requires role: {allowed}")
    if not principal.has_permission(permission):
        logger.info(
            "Principal %s lacks permission %s",
            principal.caller_id,
            permission.value,
        )
        raise ForbiddenException(f"Missing permission: {permission.value}")
    return principal


def require_access(
    *roles: RoleEnum,
    permission: PermissionEnum,
) -> Callable[..., Awaitable[Principal]]:
    """Dependency factory for role and permission gated routes."""

    async def _checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        return ensure_access(principal, roles, permission)

    return _checker
