from __future__ import annotations

import logging
from typing import Protocol

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse


LOGGER = logging.getLogger("uptime-monitor")


class SupportsHealth(Protocol):
    def is_healthy(self) -> bool: ...


def create_app(healthchecker: SupportsHealth) -> FastAPI:
    app = FastAPI(title="Uptime Monitor", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.healthchecker = healthchecker

    @app.get("/", response_class=PlainTextResponse)
    async def liveness() -> PlainTextResponse:
        try:
            healthy = bool(app.state.healthchecker.is_healthy())
        except Exception as exc:
            LOGGER.exception("HTTP: liveness check failed error=%s", exc)
            healthy = False
        if healthy:
            return PlainTextResponse("OK", status_code=200)
        return PlainTextResponse("Unhealthy", status_code=500)

    return app
