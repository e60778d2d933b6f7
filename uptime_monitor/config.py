from __future__ import annotations

import base64
import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, Field, ValidationError


LOGGER = logging.getLogger("uptime-monitor")


class ConfigError(Exception):
    """Raised when the healthcheck config file cannot be loaded or is invalid."""


class NotificationConfigYAML(BaseModel):
    """One entry of a ``notify`` list (root defaults or per healthcheck)."""

    slack: str | None = Field(default=None, description="Slack channel to post to")
    slack_mention: list[str] = Field(default_factory=list, description="Slack user ids to mention")


class HealthcheckConfigYAML(BaseModel):
    url: str
    name: str | None = None
    notify: list[NotificationConfigYAML] = Field(default_factory=list)


class ConfigYAML(BaseModel):
    healthchecks: list[HealthcheckConfigYAML] = Field(default_factory=list)
    notify: list[NotificationConfigYAML] = Field(default_factory=list)


@dataclass(frozen=True)
class NotificationConfig:
    slack_channels: tuple[str, ...] = ()
    slack_mentions: tuple[str, ...] = ()


@dataclass(frozen=True)
class Healthcheck:
    id: str
    url: str
    name: str
    notify: NotificationConfig = field(default_factory=NotificationConfig)


@dataclass(frozen=True)
class Config:
    healthchecks: tuple[Healthcheck, ...] = ()


def healthcheck_id(url: str) -> str:
    """
    Stable identity of a target: URL-safe base64 of the SHA-1 of the lower-cased URL.
    Two entries with the same effective URL share one id (and one state record).
    """
    digest = hashlib.sha1(str(url).strip().lower().encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")


def _channels(items: list[NotificationConfigYAML]) -> list[str]:
    return [n.slack.strip() for n in items if n.slack and n.slack.strip()]


def _mentions(items: list[NotificationConfigYAML]) -> list[str]:
    out: list[str] = []
    for n in items:
        out.extend(m.strip() for m in n.slack_mention if m and m.strip())
    return out


def _build_healthcheck(raw: HealthcheckConfigYAML, idx: int, defaults: list[NotificationConfigYAML], path: Path) -> Healthcheck:
    url = (raw.url or "").strip()
    parts = urlsplit(url)
    if parts.scheme not in {"http", "https"} or not parts.hostname:
        raise ConfigError(f'unable to parse config file "{path}": field "healthchecks[{idx}].url" is malformed ({url!r})')

    name = (raw.name or "").strip() or parts.hostname

    channels = _channels(raw.notify) or _channels(defaults)
    if not channels:
        raise ConfigError(f'unable to parse config file "{path}": no notifications are configured for "healthchecks[{idx}]"')
    mentions = _mentions(raw.notify) or _mentions(defaults)

    return Healthcheck(
        id=healthcheck_id(url),
        url=url,
        name=name,
        notify=NotificationConfig(slack_channels=tuple(channels), slack_mentions=tuple(mentions)),
    )


def parse_config(data: Any, path: Path) -> Config:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f'unable to parse config file "{path}": config YAML must be a mapping')
    try:
        model = ConfigYAML.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f'unable to parse config file "{path}": {exc}') from exc

    healthchecks = [_build_healthcheck(h, i, model.notify, path) for i, h in enumerate(model.healthchecks)]
    return Config(healthchecks=tuple(healthchecks))


def load_config(path: Path) -> Config:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f'unable to load config file "{path}": {exc}') from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f'unable to parse config file "{path}": {exc}') from exc

    config = parse_config(data, Path(path))
    LOGGER.debug("Loaded config path=%s healthchecks=%s", path, len(config.healthchecks))
    return config
