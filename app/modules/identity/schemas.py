"""Identity schemas."""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from app.core.enums import PermissionEnum, RoleEnum


@dataclass(frozen=True, slots=True)
class Principal:
    """Verified caller as handed over by the API gateway.

    ``external_id`` is the raw identifier from the gateway, ``caller_id`` its
    canonical UUID form used as a storage key.
    """

    external_id: str
    caller_id: UUID
    role: RoleEnum
    permissions: frozenset[PermissionEnum] = field(default_factory=frozenset)

    def has_permission(self, permission: PermissionEnum) -> bool:
        return permission in self.permissions
