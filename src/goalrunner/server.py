"""Flask application serving the remote planning/execution endpoints."""

from __future__ import annotations

import logging
import os
import threading
import time

from flask import Flask, Response, jsonify, request
from pydantic import ValidationError

from goalrunner import llm
from goalrunner.errors import RATE_LIMIT_MESSAGE, ApiRequestError
from goalrunner.schemas import (
    ExecuteTaskRequest,
    ExecuteTaskResponse,
    StartGoalRequest,
    StartGoalResponse,
)

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %d", name, raw, default)
        return default
    return value if value > 0 else default


RATE_LIMIT_PER_MINUTE: int = _env_int("GOALRUNNER_RATE_LIMIT_PER_MINUTE", 30)
RATE_LIMIT_WINDOW_SECONDS: float = 60.0
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5089


class FixedWindowRateLimiter:
    """Per-client request counter over fixed time windows."""

    def __init__(self, limit: int, window_seconds: float = RATE_LIMIT_WINDOW_SECONDS) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._lock = threading.Lock()
        self._windows: dict[str, tuple[float, int]] = {}

    def acquire(self, client: str) -> float | None:
        """Count one request; return seconds to wait when over the limit."""
        now = time.monotonic()
        with self._lock:
            expired = [
                key
                for key, (started, _) in self._windows.items()
                if now - started >= self.window_seconds
            ]
            for key in expired:
                del self._windows[key]
            started, count = self._windows.get(client, (now, 0))
            if count >= self.limit:
                return max(0.0, self.window_seconds - (now - started))
            self._windows[client] = (started, count + 1)
            return None


app = Flask(__name__)
limiter = FixedWindowRateLimiter(RATE_LIMIT_PER_MINUTE)


def _error(message: str, status: int) -> tuple[Response, int]:
    return jsonify({"error": message}), status


def _rate_limited(retry_after: float) -> tuple[Response, int]:
    resp = jsonify({"error": RATE_LIMIT_MESSAGE})
    resp.headers["Retry-After"] = str(max(1, int(retry_after + 0.5)))
    return resp, 429


def _upstream_error(exc: ApiRequestError) -> tuple[Response, int]:
    if exc.status_code == 429:
        return _error(RATE_LIMIT_MESSAGE, 429)
    return _error(f"Model request failed: {exc}", 502)


@app.before_request
def _apply_rate_limit():
    if not request.path.startswith("/api/agent/"):
        return None
    retry_after = limiter.acquire(request.remote_addr or "unknown")
    if retry_after is not None:
        logger.info("Rate limit hit for %s on %s", request.remote_addr, request.path)
        return _rate_limited(retry_after)
    return None


@app.route("/api/health")
def api_health():
    return jsonify({"status": "ok"})


@app.route("/api/agent/start", methods=["POST"])
def api_start():
    data = request.get_json(silent=True) or {}
    try:
        body = StartGoalRequest.model_validate(data)
    except ValidationError as exc:
        return _error(f"Invalid request: {exc.errors()[0].get('msg', exc)}", 400)

    try:
        tasks = llm.start_goal(body.model_settings, body.goal)
    except ApiRequestError as exc:
        return _upstream_error(exc)
    except ValueError as exc:
        logger.warning("Unparseable decomposition for goal %r: %s", body.goal, exc)
        return _error(f"Could not parse task list: {exc}", 502)
    except RuntimeError as exc:
        return _error(str(exc), 500)
    return jsonify(StartGoalResponse(new_tasks=tasks).model_dump(by_alias=True))


@app.route("/api/agent/execute", methods=["POST"])
def api_execute():
    data = request.get_json(silent=True) or {}
    try:
        body = ExecuteTaskRequest.model_validate(data)
    except ValidationError as exc:
        return _error(f"Invalid request: {exc.errors()[0].get('msg', exc)}", 400)

    try:
        result = llm.execute_task(body.model_settings, body.goal, body.task)
    except ApiRequestError as exc:
        return _upstream_error(exc)
    except RuntimeError as exc:
        return _error(str(exc), 500)
    return jsonify(ExecuteTaskResponse(response=result).model_dump())


def serve(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Run the development server."""
    logger.info("Serving agent endpoints on http://%s:%d", host, port)
    app.run(host=host, port=port, threaded=True)
