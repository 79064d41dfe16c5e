"""API tests for the remote planning/execution endpoints."""

from __future__ import annotations

from typing import Any

import pytest

import goalrunner.llm as llm_module
import goalrunner.server as server_module
from goalrunner.errors import RATE_LIMIT_MESSAGE, ApiRequestError
from goalrunner.server import FixedWindowRateLimiter

pytestmark = pytest.mark.integration


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(server_module, "limiter", FixedWindowRateLimiter(limit=100))
    server_module.app.config.update(TESTING=True)
    with server_module.app.test_client() as test_client:
        yield test_client


def test_health(client) -> None:
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_start_returns_new_tasks(client, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, Any] = {}

    def _fake_start(settings, goal):
        seen["model"] = settings.custom_model_name
        seen["goal"] = goal
        return ["one", "two"]

    monkeypatch.setattr(llm_module, "start_goal", _fake_start)

    resp = client.post(
        "/api/agent/start",
        json={"modelSettings": {"customModelName": "gpt-4"}, "goal": " launch "},
    )

    assert resp.status_code == 200
    assert resp.get_json() == {"newTasks": ["one", "two"]}
    assert seen == {"model": "gpt-4", "goal": "launch"}


def test_execute_returns_response(client, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        llm_module, "execute_task", lambda settings, goal, task: f"did {task} for {goal}"
    )

    resp = client.post("/api/agent/execute", json={"goal": "g", "task": "t"})

    assert resp.status_code == 200
    assert resp.get_json() == {"response": "did t for g"}


@pytest.mark.parametrize(
    "body",
    [{}, {"goal": "   ", "task": "t"}, {"goal": "g"}, {"goal": "g", "task": "t", "modelSettings": 5}],
)
def test_execute_rejects_invalid_bodies(client, body) -> None:
    resp = client.post("/api/agent/execute", json=body)
    assert resp.status_code == 400
    assert "Invalid request" in resp.get_json()["error"]


def test_upstream_rate_limit_is_passed_through(client, monkeypatch: pytest.MonkeyPatch) -> None:
    def _raise(settings, goal, task):
        raise ApiRequestError("quota", status_code=429)

    monkeypatch.setattr(llm_module, "execute_task", _raise)

    resp = client.post("/api/agent/execute", json={"goal": "g", "task": "t"})

    assert resp.status_code == 429
    assert resp.get_json()["error"] == RATE_LIMIT_MESSAGE


def test_upstream_failure_maps_to_bad_gateway(client, monkeypatch: pytest.MonkeyPatch) -> None:
    def _raise(settings, goal):
        raise ApiRequestError("boom", status_code=500)

    monkeypatch.setattr(llm_module, "start_goal", _raise)

    resp = client.post("/api/agent/start", json={"goal": "g"})

    assert resp.status_code == 502


def test_unparseable_task_list_maps_to_bad_gateway(client, monkeypatch: pytest.MonkeyPatch) -> None:
    def _raise(settings, goal):
        raise ValueError("No task array found in model output")

    monkeypatch.setattr(llm_module, "start_goal", _raise)

    resp = client.post("/api/agent/start", json={"goal": "g"})

    assert resp.status_code == 502
    assert "No task array" in resp.get_json()["error"]


def test_missing_shared_key_is_server_error(client, monkeypatch: pytest.MonkeyPatch) -> None:
    def _raise(settings, goal, task):
        raise RuntimeError("OPENAI_API_KEY is not set.")

    monkeypatch.setattr(llm_module, "execute_task", _raise)

    resp = client.post("/api/agent/execute", json={"goal": "g", "task": "t"})

    assert resp.status_code == 500


def test_rate_limiter_returns_429_past_window_limit(client, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(server_module, "limiter", FixedWindowRateLimiter(limit=2))
    monkeypatch.setattr(llm_module, "execute_task", lambda settings, goal, task: "ok")

    statuses = [
        client.post("/api/agent/execute", json={"goal": "g", "task": "t"}).status_code
        for _ in range(3)
    ]

    assert statuses == [200, 200, 429]
    blocked = client.post("/api/agent/execute", json={"goal": "g", "task": "t"})
    assert blocked.get_json() == {"error": RATE_LIMIT_MESSAGE}
    assert int(blocked.headers["Retry-After"]) >= 1
    assert client.get("/api/health").status_code == 200


def test_fixed_window_resets_after_window(monkeypatch: pytest.MonkeyPatch) -> None:
    clock = {"now": 100.0}
    monkeypatch.setattr(server_module.time, "monotonic", lambda: clock["now"])
    limiter = FixedWindowRateLimiter(limit=1, window_seconds=10)

    assert limiter.acquire("c") is None
    assert limiter.acquire("c") == pytest.approx(10.0)
    assert limiter.acquire("other") is None
    clock["now"] = 111.0
    assert limiter.acquire("c") is None


def test_fixed_window_drops_expired_clients(monkeypatch: pytest.MonkeyPatch) -> None:
    clock = {"now": 0.0}
    monkeypatch.setattr(server_module.time, "monotonic", lambda: clock["now"])
    limiter = FixedWindowRateLimiter(limit=5, window_seconds=10)

    for n in range(50):
        limiter.acquire(f"10.0.0.{n}")
    assert len(limiter._windows) == 50

    clock["now"] = 10.0
    assert limiter.acquire("10.0.1.1") is None
    assert list(limiter._windows) == ["10.0.1.1"]
