"""Video meeting provisioning against the Zoom Server-to-Server OAuth API."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from time import perf_counter
from typing import Any, Protocol

import httpx

from app.core.config import Settings, get_settings
from app.core.metrics import MEETING_PROVISION_DURATION_SECONDS, MEETING_PROVISION_TOTAL
from app.modules.meetings.schemas import MeetingRecord
from app.modules.meetings.token_cache import AccessTokenCache
from app.shared.exceptions import MeetingProviderException
from app.shared.utils import ensure_utc

logger = logging.getLogger(__name__)

SCHEDULED_MEETING_TYPE = 2
_PASSWORD_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZabcdefghijkmnpqrstuvwxyz23456789"
_PASSWORD_LENGTH = 8

SESSION_MEETING_SETTINGS: dict[str, Any] = {
    "host_video": True,
    "participant_video": True,
    "join_before_host": False,
    "mute_upon_entry": True,
    "watermark": False,
    "use_pmi": False,
    "approval_type": 0,
    "audio": "both",
    "auto_recording": "none",
    "enforce_login": False,
    "waiting_room": True,
    "allow_multiple_devices": True,
}


class MeetingProvider(Protocol):
    """Contract for meeting vendors used by the booking workflows."""

    async def provision(
        self,
        topic: str,
        category: str,
        start_at: datetime,
        duration_minutes: int,
    ) -> MeetingRecord:
        """Create a scheduled meeting or raise MeetingProviderException."""

    async def cancel(self, external_meeting_id: str) -> None:
        """Delete a previously provisioned meeting."""


def generate_meeting_password() -> str:
    """Generate a short password without look-alike characters."""
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(_PASSWORD_LENGTH))


def _vendor_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        message = body.get("message") or body.get("reason") or body.get("error")
        if message:
            return str(message)
    return response.reason_phrase or f"HTTP {response.status_code}"


class ZoomMeetingProvider:
    """Zoom client with a shared, lock-guarded access token cache."""

    def __init__(
        self,
        settings: Settings,
        token_cache: AccessTokenCache,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.token_cache = token_cache
        self.http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.meeting_request_timeout_seconds),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    def _credentials(self) -> tuple[str, str, str]:
        account_id = (self.settings.zoom_account_id or "").strip()
        client_id = (self.settings.zoom_client_id or "").strip()
        secret = self.settings.zoom_client_secret
        client_secret = secret.get_secret_value().strip() if secret is not None else ""
        if not account_id or not client_id or not client_secret:
            raise MeetingProviderException(
                "Meeting provider credentials are not configured. Set ZOOM_ACCOUNT_ID, "
                "ZOOM_CLIENT_ID and ZOOM_CLIENT_SECRET.",
            )
        return account_id, client_id, client_secret

    async def _fetch_access_token(self) -> tuple[str, int]:
        account_id, client_id, client_secret = self._credentials()
        try:
            response = await self.http.post(
                self.settings.zoom_oauth_url,
                params={"grant_type": "account_credentials", "account_id": account_id},
                auth=httpx.BasicAuth(client_id, client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.TimeoutException as exc:
            raise MeetingProviderException("Meeting provider authentication timed out") from exc
        except httpx.HTTPError as exc:
            raise MeetingProviderException(
                f"Failed to authenticate with meeting provider: {exc.__class__.__name__}",
            ) from exc

        if not response.is_success:
            logger.error("Meeting provider token request failed with status %s", response.status_code)
            raise MeetingProviderException(
                f"Failed to authenticate with meeting provider: {_vendor_message(response)}",
                provider_status=response.status_code,
            )

        try:
            data = response.json()
            token = str(data["access_token"])
            expires_in = int(data.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError) as exc:
            raise MeetingProviderException(
                "Meeting provider returned a malformed token response",
                provider_status=response.status_code,
            ) from exc

        logger.info("Obtained meeting provider access token")
        return token, expires_in

    async def _access_token(self) -> str:
        return await self.token_cache.get_or_refresh(self._fetch_access_token)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        token = await self._access_token()
        url = f"{self.settings.zoom_api_base_url.rstrip('/')}{path}"
        try:
            response = await self.http.request(
                method,
                url,
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
        except httpx.TimeoutException as exc:
            raise MeetingProviderException(
                f"Meeting provider request timed out after "
                f"{self.settings.meeting_request_timeout_seconds}s",
            ) from exc
        except httpx.HTTPError as exc:
            raise MeetingProviderException(
                f"Meeting provider is unreachable: {exc.__class__.__name__}",
            ) from exc

        if response.status_code == 401:
            self.token_cache.invalidate()
        return response

    async def provision(
        self,
        topic: str,
        category: str,
        start_at: datetime,
        duration_minutes: int,
    ) -> MeetingRecord:
        """Create a scheduled meeting for a session window."""
        payload = {
            "topic": f"{topic} - {category}",
            "type": SCHEDULED_MEETING_TYPE,
            "start_time": ensure_utc(start_at).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration": duration_minutes,
            "timezone": "UTC",
            "password": generate_meeting_password(),
            "agenda": f"Educational session: {topic}",
            "settings": dict(SESSION_MEETING_SETTINGS),
        }

        started_at = perf_counter()
        outcome = "failure"
        try:
            response = await self._request("POST", "/users/me/meetings", json=payload)
            if not response.is_success:
                logger.error(
                    "Meeting creation failed for topic %r with status %s",
                    payload["topic"],
                    response.status_code,
                )
                raise MeetingProviderException(
                    f"Failed to create meeting: {_vendor_message(response)}",
                    provider_status=response.status_code,
                )
            try:
                data = response.json()
                record = MeetingRecord(
                    external_meeting_id=str(data["id"]),
                    join_url=str(data["join_url"]),
                    host_url=str(data["start_url"]),
                    access_code=data.get("password") or payload["password"],
                )
            except (ValueError, KeyError, TypeError) as exc:
                raise MeetingProviderException(
                    "Meeting provider returned a malformed meeting response",
                    provider_status=response.status_code,
                ) from exc
            outcome = "success"
        finally:
            MEETING_PROVISION_TOTAL.labels(outcome=outcome).inc()
            MEETING_PROVISION_DURATION_SECONDS.observe(perf_counter() - started_at)

        logger.info("Provisioned meeting %s for %r", record.external_meeting_id, payload["topic"])
        return record

    async def cancel(self, external_meeting_id: str) -> None:
        """Delete a meeting; a missing meeting counts as already canceled."""
        response = await self._request("DELETE", f"/meetings/{external_meeting_id}")
        if response.status_code == 404:
            return
        if not response.is_success:
            raise MeetingProviderException(
                f"Failed to cancel meeting: {_vendor_message(response)}",
                provider_status=response.status_code,
            )
        logger.info("Canceled meeting %s", external_meeting_id)


_token_cache: AccessTokenCache | None = None
_meeting_provider: ZoomMeetingProvider | None = None
_meeting_provider_signature: tuple[str | None, str | None, str, str, float] | None = None


def _shared_token_cache(settings: Settings) -> AccessTokenCache:
    global _token_cache
    if _token_cache is None:
        _token_cache = AccessTokenCache(
            refresh_margin_seconds=settings.meeting_token_refresh_margin_seconds,
        )
    return _token_cache


async def get_meeting_provider() -> ZoomMeetingProvider:
    """Return process-wide provider; rebuilt when vendor settings change."""
    global _meeting_provider, _meeting_provider_signature, _token_cache
    settings = get_settings()
    signature = (
        settings.zoom_account_id,
        settings.zoom_client_id,
        settings.zoom_oauth_url,
        settings.zoom_api_base_url,
        settings.meeting_request_timeout_seconds,
    )
    if _meeting_provider is not None and _meeting_provider_signature != signature:
        logger.info("Meeting provider settings changed; rebuilding client")
        await _meeting_provider.aclose()
        _meeting_provider = None
        _token_cache = None
    if _meeting_provider is None:
        _meeting_provider = ZoomMeetingProvider(settings, _shared_token_cache(settings))
        _meeting_provider_signature = signature
    return _meeting_provider


async def close_meeting_provider() -> None:
    """Close the shared HTTP client on shutdown."""
    global _meeting_provider, _meeting_provider_signature
    if _meeting_provider is not None:
        await _meeting_provider.aclose()
    _meeting_provider = None
    _meeting_provider_signature = None
