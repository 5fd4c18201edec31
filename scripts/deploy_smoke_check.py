"""Post-deploy smoke checks executed from the app container."""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from datetime import UTC, datetime, timedelta
from uuid import uuid4

BASE_URL = "http://localhost:8000"


def request(
    path: str,
    *,
    method: str = "GET",
    body: dict | None = None,
    headers: dict[str, str] | None = None,
    expected: int = 200,
) -> bytes:
    payload = None
    req_headers = {"Accept": "application/json"}
    if headers:
        req_headers.update(headers)
    if body is not None:
        payload = json.dumps(body).encode("utf-8")
        req_headers["Content-Type"] = "application/json"

    request_obj = urllib.request.Request(
        f"{BASE_URL}{path}",
        data=payload,
        method=method,
        headers=req_headers,
    )
    try:
        with urllib.request.urlopen(request_obj, timeout=30) as response:
            content = response.read()
            status = response.getcode()
    except urllib.error.HTTPError as exc:  # pragma: no cover - runtime smoke script
        body_text = exc.read().decode("utf-8", errors="ignore")
        raise RuntimeError(f"{method} {path} -> {exc.code}: {body_text}") from exc

    if status != expected:
        raise RuntimeError(f"{method} {path} -> {status}, expected {expected}")
    return content


def main() -> None:
    for endpoint in ["/health", "/ready", "/docs", "/metrics"]:
        request(endpoint, expected=200)

    teacher_id = f"deploy-smoke-{uuid4().hex[:10]}"
    teacher_headers = {
        "X-User-Id": teacher_id,
        "X-User-Role": "teacher",
        "X-User-Permissions": "manage_availability,view_availability",
    }
    start_at = datetime.now(UTC) + timedelta(days=30)

    request(
        "/api/v1/availability/me",
        method="PUT",
        headers=teacher_headers,
        body={
            "availabilities": [
                {
                    "startTime": start_at.isoformat(),
                    "endTime": (start_at + timedelta(hours=1)).isoformat(),
                    "sessionDescription": "Deploy smoke slot",
                },
            ],
        },
        expected=200,
    )
    open_slots = json.loads(
        request(
            f"/api/v1/availability/providers/{teacher_id}/open",
            headers=teacher_headers,
            expected=200,
        ).decode("utf-8")
    )
    if len(open_slots) != 1:
        raise RuntimeError(f"Expected one open smoke slot, got {len(open_slots)}")

    request(
        "/api/v1/availability/me",
        method="PUT",
        headers=teacher_headers,
        body={"availabilities": []},
        expected=200,
    )

    print("Smoke checks passed.")


if __name__ == "__main__":
    main()
