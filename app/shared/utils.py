"""Shared time helpers.

All persisted instants are timezone-aware UTC. Caller-supplied timestamps
without an explicit offset belong to the configured default zone and are
converted before any comparison or storage.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone, tzinfo


def utc_now() -> datetime:
    """Return aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime, default_tz: tzinfo = timezone.utc) -> datetime:
    """Normalize datetime to UTC; naive values are read in ``default_tz``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: str | datetime, default_tz: tzinfo) -> datetime:
    """Parse an ISO-8601 value into an aware UTC datetime.

    Raises ``ValueError`` when the string is not a valid ISO-8601 timestamp.
    """
    if isinstance(value, datetime):
        return ensure_utc(value, default_tz)
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    return ensure_utc(datetime.fromisoformat(text), default_tz)


def duration_minutes(start_at: datetime, end_at: datetime) -> int:
    """Whole minutes covering the window, rounded up."""
    return math.ceil((end_at - start_at).total_seconds() / 60)


def format_local(dt: datetime, zone: tzinfo) -> str:
    """Render an instant for user-facing messages in the given zone."""
    return dt.astimezone(zone).strftime("%Y-%m-%d %I:%M %p %Z")
