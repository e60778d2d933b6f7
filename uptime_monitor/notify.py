from __future__ import annotations

import logging
from typing import Any

import httpx

from uptime_monitor.healthcheck import HealthcheckResult
from uptime_monitor.slack import SlackConfig, redact_slack_response, send_slack_message, slack_auth_test


LOGGER = logging.getLogger("uptime-monitor")

UP_EMOJI = ":ok:"
UP_COLOR = "#22E722"
DOWN_EMOJI = ":no_entry:"
DOWN_COLOR = "#E72222"


class NotifierError(Exception):
    pass


def format_mentions(mentions: tuple[str, ...] | list[str]) -> str:
    return ", ".join(f"<@{m}>" for m in mentions)


def build_message(result: HealthcheckResult) -> dict[str, Any]:
    hc = result.healthcheck
    if result.ok:
        title = f'{UP_EMOJI} "{hc.name}" is up'
        text = ""
        emoji, color = UP_EMOJI, UP_COLOR
    else:
        title = f'{DOWN_EMOJI} "{hc.name}" is down'
        text = f"`{result.message}`" if result.message else ""
        emoji, color = DOWN_EMOJI, DOWN_COLOR

    mentions = format_mentions(hc.notify.slack_mentions)
    if mentions:
        text = f"{text}\n{mentions}" if text else mentions

    payload: dict[str, Any] = {"text": title, "icon_emoji": emoji}
    if text:
        payload["attachments"] = [{"title": title, "text": text, "fallback": title, "color": color}]
    return payload


class Notifier:
    """Sends "host is up/down" messages to the Slack channels of a healthcheck."""

    def __init__(self, client: httpx.AsyncClient, config: SlackConfig) -> None:
        self.client = client
        self.config = config

    async def connect(self) -> str:
        ok, data = await slack_auth_test(self.client, self.config)
        if not ok:
            LOGGER.error("SLACK: unable to connect: %s", redact_slack_response(data))
            raise NotifierError(f"slack auth.test failed: {data.get('error') or 'unknown error'}")
        identity = str(data.get("user") or data.get("user_id") or "")
        LOGGER.info('SLACK: connected as "%s"', identity)
        return identity

    async def notify(self, result: HealthcheckResult) -> bool:
        payload = build_message(result)
        ok_all = True
        for channel in result.healthcheck.notify.slack_channels:
            ok, data = await send_slack_message(self.client, self.config, channel, payload)
            if not ok:
                ok_all = False
                LOGGER.warning('SLACK: unable to send message to "%s": %s', channel, redact_slack_response(data))
                continue
            LOGGER.info('SLACK: message "%s" has been sent to "%s"', data.get("ts"), channel)
        return ok_all
