"""Canonical identifier helpers.

Gateways hand us opaque user ids (auth provider subjects, numeric ids, etc.)
while every storage key is a UUID. ``normalize_identifier`` bridges the two
deterministically: the same input always yields the same UUID.
"""

from __future__ import annotations

import hashlib
import re
from uuid import UUID

_CANONICAL_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_canonical_uuid(value: str) -> bool:
    """Return True for RFC 4122 UUID strings of versions 1-5."""
    return bool(_CANONICAL_UUID_RE.fullmatch(value))


def derive_uuid(value: str) -> UUID:
    """Build a version-4-shaped UUID from the SHA-256 digest of ``value``."""
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
    variant = format((int(digest[16], 16) & 0x3) | 0x8, "x")
    return UUID(
        "-".join(
            (
                digest[0:8],
                digest[8:12],
                "4" + digest[13:16],
                variant + digest[17:20],
                digest[20:32],
            ),
        ),
    )


def normalize_identifier(value: str | UUID) -> UUID:
    """Map any caller-supplied identifier to its canonical UUID."""
    if isinstance(value, UUID):
        return value
    if is_canonical_uuid(value):
        return UUID(value)
    return derive_uuid(value)
