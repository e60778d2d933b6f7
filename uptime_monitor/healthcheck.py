from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from uptime_monitor.config import Healthcheck


HTTP_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class HealthcheckResult:
    healthcheck: Healthcheck
    time: datetime
    ok: bool
    message: str = ""

    def __str__(self) -> str:
        if self.ok:
            return f"{self.healthcheck.name} up"
        return f"{self.healthcheck.name} down: {self.message}"


def short_error_message(text: str) -> str:
    """
    Best-effort cleanup of transport error text: keep the last non-empty
    colon-delimited segment ("ConnectError: [Errno 111] Connection refused"
    -> "[Errno 111] Connection refused"). Lossy; only meant for humans.
    """
    s = str(text or "")
    for part in reversed(s.split(":")):
        part = part.strip()
        if part:
            return part
    return s.strip()


def ok_result(healthcheck: Healthcheck) -> HealthcheckResult:
    return HealthcheckResult(healthcheck=healthcheck, time=datetime.now(timezone.utc), ok=True, message="")


def error_result(healthcheck: Healthcheck, text: str) -> HealthcheckResult:
    return HealthcheckResult(
        healthcheck=healthcheck,
        time=datetime.now(timezone.utc),
        ok=False,
        message=short_error_message(text),
    )


async def execute_healthcheck(
    healthcheck: Healthcheck,
    client: httpx.AsyncClient,
    *,
    timeout: float = HTTP_TIMEOUT_SECONDS,
) -> HealthcheckResult:
    # httpx applies `timeout` per connect/read/write step; wait_for caps the whole request.
    try:
        resp = await asyncio.wait_for(
            client.get(healthcheck.url, follow_redirects=True, timeout=timeout),
            timeout=timeout,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        return error_result(healthcheck, f"{type(e).__name__}: {e}")
    except asyncio.TimeoutError:
        return error_result(healthcheck, f"TimeoutError: no response within {timeout:g}s")

    if resp.status_code >= 400:
        return error_result(healthcheck, f"non-successful response {resp.status_code} {resp.reason_phrase}".strip())

    return ok_result(healthcheck)
