"""Meeting provisioning schemas."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class MeetingRecord:
    """Vendor meeting attached to a scheduled session."""

    external_meeting_id: str
    join_url: str
    host_url: str
    access_code: str | None = None
