"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """Caller roles supplied by the gateway."""

    STUDENT = "student"
    TEACHER = "teacher"


class PermissionEnum(StrEnum):
    """Permissions checked per route."""

    MANAGE_AVAILABILITY = "manage_availability"
    VIEW_AVAILABILITY = "view_availability"
    CREATE_SESSION = "create_session"
    VIEW_SESSIONS = "view_sessions"
    BOOK_SESSION = "book_session"
    ENROLL_SESSION = "enroll_session"
    VIEW_MY_SESSIONS = "view_my_sessions"


class SessionTypeEnum(StrEnum):
    """Scheduled session kind."""

    ONE_ON_ONE = "ONE_ON_ONE"
    GROUP = "GROUP"


class SessionStatusEnum(StrEnum):
    """Scheduled session status."""

    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"
