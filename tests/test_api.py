from __future__ import annotations

from fastapi.testclient import TestClient

from uptime_monitor.api import create_app


class _FakeHealthchecker:
    def __init__(self, healthy: bool) -> None:
        self.healthy = healthy

    def is_healthy(self) -> bool:
        return self.healthy


class _BrokenHealthchecker:
    def is_healthy(self) -> bool:
        raise RuntimeError("lock is gone")


def test_liveness_ok_and_unhealthy() -> None:
    checker = _FakeHealthchecker(healthy=True)
    client = TestClient(create_app(checker))

    r = client.get("/")
    assert r.status_code == 200
    assert r.text == "OK"

    checker.healthy = False
    r = client.get("/")
    assert r.status_code == 500
    assert r.text == "Unhealthy"


def test_liveness_error_becomes_500_and_server_keeps_serving() -> None:
    app = create_app(_BrokenHealthchecker())
    client = TestClient(app)

    assert client.get("/").status_code == 500

    app.state.healthchecker = _FakeHealthchecker(healthy=True)
    assert client.get("/").status_code == 200
