from __future__ import annotations

import asyncio
import enum
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from uptime_monitor.healthcheck import HealthcheckResult


LOGGER = logging.getLogger("uptime-monitor")

_FRACTION_RE = re.compile(r"\.(\d{1,6})\d*")


class Transition(enum.Enum):
    NO_CHANGE = "no_change"
    ADDED = "added"
    UPDATED = "updated"


@dataclass
class StoredItem:
    time: datetime
    ok: bool
    message: str = ""


def format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_time(value: Any) -> datetime:
    s = str(value or "").strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    # RFC3339 fractions run from 1 to 9 digits; fromisoformat wants exactly 6 before 3.11.
    s = _FRACTION_RE.sub(lambda m: "." + m.group(1).ljust(6, "0"), s)
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _coerce_items(raw: Any) -> dict[str, StoredItem]:
    """
    Best-effort decode of the "urls" mapping. Entries that do not look like
    {"time": ..., "status": bool, "message": str} are dropped.
    """
    if not isinstance(raw, dict):
        return {}
    urls = raw.get("urls")
    if not isinstance(urls, dict):
        return {}

    out: dict[str, StoredItem] = {}
    for key, item in urls.items():
        if not isinstance(key, str) or not key or not isinstance(item, dict):
            continue
        if not isinstance(item.get("status"), bool):
            continue
        try:
            ts = parse_time(item.get("time"))
        except ValueError:
            continue
        out[key] = StoredItem(time=ts, ok=item["status"], message=str(item.get("message") or ""))
    return out


def _encode_items(items: dict[str, StoredItem]) -> dict[str, Any]:
    return {
        "urls": {
            key: {"time": format_time(item.time), "status": item.ok, "message": item.message}
            for key, item in items.items()
        }
    }


class Storage:
    """
    Last known result per healthcheck, persisted as one JSON file.

    ``update`` holds a single lock across read, classify, write so that
    concurrent probe completions cannot lose each other's records. Disk
    problems are logged and never raised: a broken file reads as empty and
    a failed write is skipped.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def update(self, result: HealthcheckResult) -> Transition:
        hc = result.healthcheck
        async with self._lock:
            items = await asyncio.to_thread(self._read_items)

            item = items.get(hc.id)
            if item is None:
                transition = Transition.ADDED
            elif item.ok != result.ok:
                transition = Transition.UPDATED
                if result.ok:
                    LOGGER.info("[%s] host is now up", hc.name)
                else:
                    LOGGER.info("[%s] host is now down: %s", hc.name, result.message)
            else:
                transition = Transition.NO_CHANGE

            items[hc.id] = StoredItem(time=result.time, ok=result.ok, message=result.message)

            await asyncio.to_thread(self._write_items, items)
            return transition

    async def read(self) -> dict[str, StoredItem]:
        async with self._lock:
            return await asyncio.to_thread(self._read_items)

    def _read_items(self) -> dict[str, StoredItem]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except Exception as exc:
            LOGGER.warning("Failed to read state file path=%s error=%s", self.path, exc)
            return {}
        return _coerce_items(raw)

    def _write_items(self, items: dict[str, StoredItem]) -> None:
        try:
            payload = json.dumps(_encode_items(items), ensure_ascii=False, indent=4)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_name(f"{self.path.name}.tmp")
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(self.path)
        except Exception as exc:
            LOGGER.warning("Failed to write state file path=%s error=%s", self.path, exc)
