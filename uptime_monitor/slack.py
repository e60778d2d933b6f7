from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import httpx


SLACK_API_BASE_URL = "https://slack.com/api"


@dataclass(frozen=True)
class SlackConfig:
    token: str
    username: str = "UptimeMonitor"
    base_url: str = SLACK_API_BASE_URL


def _redact(config: SlackConfig, text: str) -> str:
    if config.token:
        return text.replace(config.token, "<redacted>")
    return text


async def _call(client: httpx.AsyncClient, config: SlackConfig, method: str, payload: dict[str, Any]) -> tuple[bool, dict]:
    url = f"{config.base_url.rstrip('/')}/{method}"
    headers = {"Authorization": f"Bearer {config.token}"}
    try:
        resp = await client.post(url, json=payload, headers=headers, timeout=15.0)
        data = resp.json()
    except Exception as e:
        return False, {"ok": False, "error": _redact(config, f"{type(e).__name__}: {e}")}
    if not isinstance(data, dict):
        return False, {"ok": False, "error": f"unexpected response status={resp.status_code}"}
    return bool(data.get("ok")), data


async def slack_auth_test(client: httpx.AsyncClient, config: SlackConfig) -> tuple[bool, dict]:
    return await _call(client, config, "auth.test", {})


async def send_slack_message(
    client: httpx.AsyncClient,
    config: SlackConfig,
    channel: str,
    payload: dict[str, Any],
) -> tuple[bool, dict]:
    body = {"channel": channel, **payload}
    if config.username:
        body.setdefault("username", config.username)
    return await _call(client, config, "chat.postMessage", body)


def redact_slack_response(data: dict) -> str:
    safe: dict[str, Any] = {"ok": data.get("ok")}
    for key in ("ts", "channel", "error"):
        if data.get(key):
            safe[key] = data.get(key)
    return json.dumps(safe, ensure_ascii=False)
