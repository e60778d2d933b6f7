from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import logging
import os
import signal
from pathlib import Path

import httpx
import uvicorn

from uptime_monitor.api import create_app
from uptime_monitor.config import ConfigError, load_config
from uptime_monitor.monitor import Healthchecker
from uptime_monitor.notify import Notifier, NotifierError
from uptime_monitor.settings import MonitorSettings, SettingsError
from uptime_monitor.slack import SlackConfig
from uptime_monitor.storage import Storage


LOGGER = logging.getLogger("uptime-monitor")

SHUTDOWN_GRACE_SECONDS = 10


class _Server(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to the monitor."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield


async def run(settings: MonitorSettings) -> int:
    Path(settings.data_dir).mkdir(parents=True, exist_ok=True)
    config_path = settings.resolved_config_path
    period = settings.period_seconds
    host, port = settings.listen

    async with httpx.AsyncClient() as client:
        notifier = Notifier(client, SlackConfig(token=settings.slack_token, username=settings.slack_username))
        try:
            await notifier.connect()
        except NotifierError as exc:
            LOGGER.error("Unable to start: %s", exc)
            return 1

        storage = Storage(settings.state_path)
        known = await storage.read()
        LOGGER.info("Using state file path=%s known_targets=%s", settings.state_path, len(known))

        healthchecker = Healthchecker(
            storage,
            notifier,
            lambda: load_config(config_path),
            client=client,
            period=period,
            max_concurrency=settings.max_concurrency,
        )
        try:
            await healthchecker.start()
        except ConfigError as exc:
            LOGGER.error("Unable to start: %s", exc)
            return 1

        server = _Server(
            uvicorn.Config(
                create_app(healthchecker),
                host=host,
                port=port,
                log_level="warning",
                timeout_graceful_shutdown=SHUTDOWN_GRACE_SECONDS,
            )
        )

        def _shutdown(signame: str) -> None:
            LOGGER.info("%s received, shutting down", signame)
            healthchecker.stop()
            server.should_exit = True

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _shutdown, sig.name)

        LOGGER.info('Listening on "%s:%s"', host, port)
        LOGGER.info("Up and running")
        await asyncio.gather(server.serve(), healthchecker.run_loop())

    LOGGER.info("Good bye")
    return 0


def build_settings(args: argparse.Namespace) -> MonitorSettings:
    overrides = {
        "data_dir": args.data_dir,
        "config_path": args.config,
        "listen_address": args.listen,
        "slack_token": args.slack_token,
        "slack_username": args.slack_username,
        "period": args.period,
        "max_concurrency": args.max_concurrency,
    }
    return dataclasses.replace(MonitorSettings(), **{k: v for k, v in overrides.items() if v not in (None, "")})


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="HTTP uptime monitor with Slack notifications")
    parser.add_argument("-d", "--data-dir", help="Path to data directory (defaults to $VAR_DIR or ./var)")
    parser.add_argument("-c", "--config", help="Path to config file (defaults to <data dir>/config.yaml)")
    parser.add_argument("-e", "--listen", help="Endpoint for the liveness HTTP API (defaults to $LISTEN_ADDRESS or 0.0.0.0:5000)")
    parser.add_argument("-t", "--slack-token", help="Slack access token (defaults to $SLACK_TOKEN)")
    parser.add_argument("-u", "--slack-username", help="Slack username (defaults to $SLACK_USERNAME or UptimeMonitor)")
    parser.add_argument("-p", "--period", help="Period between two healthcheck cycles, e.g. 30s, 1m (defaults to 1m)")
    parser.add_argument("--max-concurrency", type=int, help="Maximum healthchecks running at once (defaults to 25)")
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (INFO, WARNING, ...)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    # The Slack token travels in request headers; keep client debug logs out.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    settings = build_settings(args)
    try:
        settings.validate()
    except SettingsError as exc:
        LOGGER.error("Invalid settings: %s", exc)
        return 2

    return asyncio.run(run(settings))


if __name__ == "__main__":
    raise SystemExit(main())
