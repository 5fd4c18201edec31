from __future__ import annotations

import pytest

from app.core.enums import PermissionEnum, RoleEnum
from app.modules.identity.service import (
    build_principal,
    ensure_access,
    get_current_principal,
    parse_permissions,
    require_access,
)
from app.shared.exceptions import ForbiddenException, UnauthorizedException
from app.shared.identifiers import normalize_identifier


def test_parse_permissions_ignores_unknown_tokens_and_whitespace() -> None:
    parsed = parse_permissions(" book_session, ENROLL_SESSION ,fly_plane,,")

    assert parsed == frozenset({PermissionEnum.BOOK_SESSION, PermissionEnum.ENROLL_SESSION})
    assert parse_permissions(None) == frozenset()


def test_build_principal_normalizes_identifier_and_role() -> None:
    principal = build_principal("user_2xYz", " Teacher ", "create_session")

    assert principal.external_id == "user_2xYz"
    assert principal.caller_id == normalize_identifier("user_2xYz")
    assert principal.role == RoleEnum.TEACHER
    assert principal.has_permission(PermissionEnum.CREATE_SESSION)
    assert not principal.has_permission(PermissionEnum.BOOK_SESSION)


@pytest.mark.parametrize(
    ("user_id", "role"),
    [(None, "student"), ("  ", "student"), ("user-1", None), ("user-1", "admin")],
)
def test_build_principal_rejects_missing_or_unknown_identity(user_id, role) -> None:
    with pytest.raises(UnauthorizedException):
        build_principal(user_id, role, "book_session")


@pytest.mark.asyncio
async def test_get_current_principal_reads_gateway_headers() -> None:
    principal = await get_current_principal(
        x_user_id="student-7",
        x_user_role="student",
        x_user_permissions="book_session",
    )

    assert principal.role == RoleEnum.STUDENT
    assert principal.caller_id == normalize_identifier("student-7")


def test_ensure_access_requires_role_and_permission() -> None:
    student = build_principal("student-1", "student", "book_session")

    assert ensure_access(student, (RoleEnum.STUDENT,), PermissionEnum.BOOK_SESSION) is student

    with pytest.raises(ForbiddenException, match="requires role: teacher"):
        ensure_access(student, (RoleEnum.TEACHER,), PermissionEnum.BOOK_SESSION)

    with pytest.raises(ForbiddenException, match="Missing permission: enroll_session"):
        ensure_access(student, (RoleEnum.STUDENT,), PermissionEnum.ENROLL_SESSION)


@pytest.mark.asyncio
async def test_require_access_dependency_gates_principal() -> None:
    checker = require_access(RoleEnum.TEACHER, permission=PermissionEnum.MANAGE_AVAILABILITY)
    teacher = build_principal("teacher-1", "teacher", "manage_availability")
    student = build_principal("student-1", "student", "manage_availability")

    assert await checker(principal=teacher) is teacher
    with pytest.raises(ForbiddenException):
        await checker(principal=student)
