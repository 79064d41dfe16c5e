"""Minimal JSON-over-HTTP client for the remote agent endpoints."""

from __future__ import annotations

import http.client
import json
import logging
import os
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from goalrunner.errors import ApiRequestError

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %s", name, raw, default)
        return default
    return value if value > 0 else default


DEFAULT_API_URL: str = os.getenv("GOALRUNNER_API_URL", "").strip() or "http://127.0.0.1:5089"
DEFAULT_HTTP_TIMEOUT_S: float = _env_float("GOALRUNNER_HTTP_TIMEOUT_S", 120.0)

START_PATH = "/api/agent/start"
EXECUTE_PATH = "/api/agent/execute"


def endpoint(base_url: str, path: str) -> str:
    return (base_url or DEFAULT_API_URL).rstrip("/") + path


def post_json(
    url: str, body: dict[str, Any], *, timeout_s: float = DEFAULT_HTTP_TIMEOUT_S
) -> dict[str, Any]:
    """POST *body* as JSON and return the decoded JSON object.

    HTTP errors keep their status code on the raised
    :class:`ApiRequestError`; network errors carry none.
    """
    data = json.dumps(body).encode("utf-8")
    request = Request(
        url,
        data=data,
        headers={"Content-Type": "application/json", "Accept": "application/json"},
        method="POST",
    )
    try:
        with urlopen(request, timeout=float(timeout_s)) as response:
            raw = response.read()
            charset = response.headers.get_content_charset() or "utf-8"
    except HTTPError as exc:
        detail = ""
        try:
            detail = exc.read().decode("utf-8", errors="replace")
        except OSError:
            detail = ""
        msg = f"HTTP {exc.code} for {url}"
        if detail:
            msg = f"{msg}: {detail[:300]}"
        raise ApiRequestError(msg, status_code=exc.code) from exc
    except URLError as exc:
        raise ApiRequestError(f"Network error for {url}: {exc.reason}") from exc
    except TimeoutError as exc:
        raise ApiRequestError(f"Timed out after {timeout_s}s for {url}") from exc
    except (OSError, http.client.HTTPException) as exc:
        # Dropped connections and truncated bodies surface outside URLError.
        raise ApiRequestError(f"Connection failed for {url}: {exc!r}") from exc

    try:
        payload = json.loads(raw.decode(charset, errors="replace"))
    except ValueError as exc:
        raise ApiRequestError(f"Non-JSON response from {url}") from exc
    if not isinstance(payload, dict):
        raise ApiRequestError(f"Unexpected JSON payload from {url}")
    return payload
