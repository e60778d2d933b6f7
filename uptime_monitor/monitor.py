from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import httpx

from uptime_monitor.config import Config, Healthcheck
from uptime_monitor.healthcheck import HealthcheckResult, execute_healthcheck
from uptime_monitor.storage import Storage, Transition


LOGGER = logging.getLogger("uptime-monitor")

DEFAULT_MAX_CONCURRENCY = 25


class SupportsNotify(Protocol):
    async def notify(self, result: HealthcheckResult) -> bool: ...


@dataclass(frozen=True)
class CheckOutcome:
    result: HealthcheckResult
    transition: Transition
    notified: bool


def should_notify(transition: Transition, *, initial: bool) -> bool:
    """
    First-seen targets are announced only on the bootstrap cycle; after that
    only genuine up/down flips are. An ADDED record in steady state means the
    state file was reset, which is not news.
    """
    if transition is Transition.UPDATED:
        return True
    return initial and transition is Transition.ADDED


class Healthchecker:
    """
    Runs healthcheck cycles: probe every configured target concurrently, feed
    each result through storage, notify on transitions, and remember when the
    last cycle finished so the liveness endpoint can tell a stalled loop.
    """

    def __init__(
        self,
        storage: Storage,
        notifier: SupportsNotify,
        config_loader: Callable[[], Config],
        *,
        client: httpx.AsyncClient,
        period: float = 60.0,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self.storage = storage
        self.notifier = notifier
        self.config_loader = config_loader
        self.client = client
        self.period = float(period)
        self.config: Config | None = None

        self._semaphore = asyncio.Semaphore(max(1, int(max_concurrency)))
        self._stop = asyncio.Event()
        self._last_check_lock = threading.Lock()
        self._last_check_monotonic: float | None = None

    @property
    def last_check_monotonic(self) -> float | None:
        with self._last_check_lock:
            return self._last_check_monotonic

    async def start(self) -> list[CheckOutcome]:
        """Bootstrap: load config (errors are fatal here) and run the first cycle."""
        self.config = await asyncio.to_thread(self.config_loader)
        LOGGER.info("Loaded config healthchecks=%s", len(self.config.healthchecks))
        return await self.run_once(initial=True)

    async def reload_config(self) -> Config:
        try:
            config = await asyncio.to_thread(self.config_loader)
        except Exception as exc:
            if self.config is None:
                raise
            LOGGER.warning("Unable to reload config; will use last valid config instead error=%s", exc)
            return self.config
        self.config = config
        return config

    async def run_loop(self) -> None:
        LOGGER.info("Will run healthchecks every %ss", self.period)
        next_at = time.monotonic() + self.period
        while not self._stop.is_set():
            delay = max(0.0, next_at - time.monotonic())
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            await self.reload_config()
            await self.run_once(initial=False)

            next_at += self.period
            now = time.monotonic()
            if next_at < now:
                LOGGER.warning("Check cycle overran the period; starting next cycle immediately period=%ss", self.period)
                next_at = now
        LOGGER.info("Healthcheck loop stopped")

    def stop(self) -> None:
        self._stop.set()

    async def run_once(self, *, initial: bool) -> list[CheckOutcome]:
        config = self.config or Config()
        started = time.monotonic()
        LOGGER.info("Running check cycle initial=%s healthchecks=%s", initial, len(config.healthchecks))

        results = await asyncio.gather(*(self._check_one(hc, initial=initial) for hc in config.healthchecks))
        outcomes = [r for r in results if r is not None]

        with self._last_check_lock:
            self._last_check_monotonic = time.monotonic()

        LOGGER.info(
            "Check cycle finished elapsed_s=%.3f checked=%s notified=%s",
            time.monotonic() - started,
            len(outcomes),
            sum(1 for o in outcomes if o.notified),
        )
        return outcomes

    async def _check_one(self, hc: Healthcheck, *, initial: bool) -> CheckOutcome | None:
        async with self._semaphore:
            try:
                result = await execute_healthcheck(hc, self.client)
                transition = await self.storage.update(result)
            except Exception as exc:
                LOGGER.exception("Healthcheck crashed name=%s url=%s error=%s", hc.name, hc.url, exc)
                return None

            notified = False
            if should_notify(transition, initial=initial):
                try:
                    notified = bool(await self.notifier.notify(result))
                except Exception as exc:
                    LOGGER.exception("Notification crashed name=%s error=%s", hc.name, exc)
            return CheckOutcome(result=result, transition=transition, notified=notified)

    def is_healthy(self, now: float | None = None) -> bool:
        last = self.last_check_monotonic
        if last is None:
            LOGGER.warning("Unhealthy: no check cycle has completed yet")
            return False
        if now is None:
            now = time.monotonic()
        ago = now - last
        if ago < 2 * self.period:
            return True
        LOGGER.warning("Unhealthy: no checks for %.1fs period=%ss", ago, self.period)
        return False
