"""Single-slot bearer token cache with coalesced refresh."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from time import monotonic

TokenFetcher = Callable[[], Awaitable[tuple[str, int]]]


class AccessTokenCache:
    """Holds one vendor access token and refreshes it ahead of expiry.

    ``fetch`` returns ``(token, expires_in_seconds)``. At most one refresh runs
    at a time; callers waiting on the lock reuse the token it produced.
    """

    def __init__(
        self,
        *,
        refresh_margin_seconds: int = 300,
        now_provider: Callable[[], float] = monotonic,
    ) -> None:
        self._refresh_margin_seconds = refresh_margin_seconds
        self._now = now_provider
        self._lock = asyncio.Lock()
        self._token: str | None = None
        self._refresh_at: float | None = None

    def _current_token(self) -> str | None:
        if self._token is not None and self._refresh_at is not None and self._now() < self._refresh_at:
            return self._token
        return None

    async def get_or_refresh(self, fetch: TokenFetcher) -> str:
        """Return a valid token, calling ``fetch`` only when none is cached."""
        token = self._current_token()
        if token is not None:
            return token

        async with self._lock:
            token = self._current_token()
            if token is not None:
                return token

            token, expires_in = await fetch()
            self._token = token
            self._refresh_at = self._now() + max(0, expires_in - self._refresh_margin_seconds)
            return token

    def invalidate(self) -> None:
        self._token = None
        self._refresh_at = None
