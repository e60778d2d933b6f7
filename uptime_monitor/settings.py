from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


DEFAULT_PERIOD_SECONDS = 60.0
DEFAULT_LISTEN_ADDRESS = "0.0.0.0:5000"
DEFAULT_SLACK_USERNAME = "UptimeMonitor"

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class SettingsError(Exception):
    pass


def parse_duration(value: str | float | int) -> float:
    """
    Parse "90", "90s", "1m", "1h30m" or "500ms" into seconds.
    A bare number is taken as seconds.
    """
    if isinstance(value, (int, float)):
        return float(value)
    s = str(value or "").strip().lower()
    if not s:
        raise SettingsError("empty duration")
    try:
        return float(s)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for m in _DURATION_PART_RE.finditer(s):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos != len(s) or pos == 0:
        raise SettingsError(f"invalid duration {value!r}; expected e.g. 30s, 1m, 1h30m")
    return total


def parse_listen_address(value: str) -> tuple[str, int]:
    s = str(value or "").strip()
    host, sep, port = s.rpartition(":")
    if not sep:
        raise SettingsError(f"invalid listen address {value!r}; expected host:port")
    try:
        port_num = int(port)
    except ValueError as exc:
        raise SettingsError(f"invalid listen address {value!r}; port must be a number") from exc
    if not 0 <= port_num <= 65535:
        raise SettingsError(f"invalid listen address {value!r}; port out of range")
    return (host.strip("[]") or "0.0.0.0"), port_num


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return str(default)
    s = str(raw).strip()
    return s if s else str(default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return int(default)
    try:
        return int(str(raw).strip())
    except Exception:
        return int(default)


def _default_data_dir() -> str:
    return _env_str("VAR_DIR", str(Path.cwd() / "var"))


@dataclass(frozen=True)
class MonitorSettings:
    data_dir: str = field(default_factory=_default_data_dir)
    # Empty means "<data_dir>/config.yaml".
    config_path: str = ""
    listen_address: str = field(default_factory=lambda: _env_str("LISTEN_ADDRESS", DEFAULT_LISTEN_ADDRESS))
    slack_token: str = field(default_factory=lambda: os.getenv("SLACK_TOKEN", "").strip())
    slack_username: str = field(default_factory=lambda: _env_str("SLACK_USERNAME", DEFAULT_SLACK_USERNAME))
    period: str = field(default_factory=lambda: _env_str("CHECK_PERIOD", "1m"))
    max_concurrency: int = field(default_factory=lambda: _env_int("CHECK_CONCURRENCY", 25))

    @property
    def resolved_config_path(self) -> Path:
        if self.config_path:
            return Path(self.config_path)
        return Path(self.data_dir) / "config.yaml"

    @property
    def state_path(self) -> Path:
        return Path(self.data_dir) / "state.json"

    @property
    def period_seconds(self) -> float:
        seconds = parse_duration(self.period)
        if seconds <= 1.0:
            return DEFAULT_PERIOD_SECONDS
        return seconds

    @property
    def listen(self) -> tuple[str, int]:
        return parse_listen_address(self.listen_address)

    def validate(self) -> None:
        if not self.slack_token:
            raise SettingsError("Slack access token is not set (use -t or $SLACK_TOKEN)")
        if self.max_concurrency < 1:
            raise SettingsError("max concurrency must be at least 1")
        # Raise early on malformed values.
        _ = self.period_seconds
        _ = self.listen
