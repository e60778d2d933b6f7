from __future__ import annotations

import threading
import time
from datetime import timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import httpx
import pytest

from uptime_monitor.config import Healthcheck, NotificationConfig, healthcheck_id
from uptime_monitor.healthcheck import execute_healthcheck, short_error_message


def _hc(url: str = "http://a.example/") -> Healthcheck:
    return Healthcheck(
        id=healthcheck_id(url),
        url=url,
        name="a",
        notify=NotificationConfig(slack_channels=("#a",)),
    )


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ('Get "http://a.example": dial tcp: lookup a.example: no such host', "no such host"),
        ("ConnectError: [Errno 111] Connection refused", "[Errno 111] Connection refused"),
        ("ReadTimeout: ", "ReadTimeout"),
        ("plain message", "plain message"),
        ("trailing colons :: ", "trailing colons"),
        ("", ""),
    ],
)
def test_short_error_message(text: str, expected: str) -> None:
    assert short_error_message(text) == expected


@pytest.mark.asyncio
async def test_success_response() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await execute_healthcheck(_hc(), client)

    assert result.ok is True
    assert result.message == ""
    assert result.time.tzinfo == timezone.utc
    assert seen[0].method == "GET"
    assert str(result) == "a up"


@pytest.mark.asyncio
async def test_redirect_is_followed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/":
            return httpx.Response(302, headers={"Location": "http://a.example/home"})
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await execute_healthcheck(_hc(), client)
    assert result.ok is True


@pytest.mark.asyncio
async def test_error_status_is_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await execute_healthcheck(_hc(), client)

    assert result.ok is False
    assert result.message == "non-successful response 503 Service Unavailable"
    assert str(result) == "a down: non-successful response 503 Service Unavailable"


@pytest.mark.asyncio
async def test_status_below_400_is_success() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(399)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await execute_healthcheck(_hc(), client)
    assert result.ok is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (httpx.ConnectError("[Errno 111] Connection refused"), "[Errno 111] Connection refused"),
        (httpx.ReadTimeout("timed out"), "timed out"),
        (httpx.ConnectTimeout(""), "ConnectTimeout"),
    ],
)
async def test_transport_errors_never_raise(exc: httpx.HTTPError, expected: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await execute_healthcheck(_hc(), client)

    assert result.ok is False
    assert result.message == expected


class _DripHandler(BaseHTTPRequestHandler):
    """Sends headers at once, then the body one byte at a time."""

    body_size = 50
    interval = 0.2

    def do_GET(self) -> None:  # noqa: N802
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(self.body_size))
        self.end_headers()
        try:
            for _ in range(self.body_size):
                self.wfile.write(b".")
                self.wfile.flush()
                time.sleep(self.interval)
        except (BrokenPipeError, ConnectionResetError):
            return

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        return


@pytest.fixture(scope="module")
def drip_base_url() -> str:
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _DripHandler)
    httpd.daemon_threads = True
    host, port = httpd.server_address
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://{host}:{port}/"
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()


@pytest.mark.asyncio
async def test_slow_body_is_cut_off_at_total_timeout(drip_base_url: str) -> None:
    # Each byte arrives well inside the per-read timeout; only a whole-request deadline stops it.
    async with httpx.AsyncClient(trust_env=False) as client:
        started = time.perf_counter()
        result = await execute_healthcheck(_hc(drip_base_url), client, timeout=0.5)
        elapsed = time.perf_counter() - started

    assert elapsed < 1.5
    assert result.ok is False
    assert result.message == "no response within 0.5s"
