"""Shared preflight diagnostics for the CLI and the execution service."""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass

from goalrunner.schemas import ModelSettings

OPENAI_KEY_ENV_VARS: tuple[str, ...] = ("OPENAI_API_KEY", "GOALRUNNER_OPENAI_API_KEY")


@dataclass(frozen=True)
class PreflightCheck:
    """A single readiness check result."""

    key: str
    label: str
    status: str
    detail: str
    hint: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "key": self.key,
            "label": self.label,
            "status": self.status,
            "detail": self.detail,
            "hint": self.hint,
        }


@dataclass(frozen=True)
class PreflightReport:
    """Structured diagnostics output for setup readiness."""

    checks: list[PreflightCheck]
    mode: str

    @property
    def summary(self) -> dict[str, int]:
        counts = {"pass": 0, "warn": 0, "fail": 0}
        for check in self.checks:
            if check.status in counts:
                counts[check.status] += 1
        return counts

    @property
    def ready(self) -> bool:
        return self.summary["fail"] == 0

    def failure_messages(self) -> list[str]:
        messages: list[str] = []
        for check in self.checks:
            if check.status != "fail":
                continue
            messages.append(f"{check.label}: {check.hint or check.detail}")
        return messages

    def to_dict(self) -> dict[str, object]:
        return {
            "mode": self.mode,
            "checks": [c.to_dict() for c in self.checks],
            "summary": self.summary,
            "ready": self.ready,
        }


_PLACEHOLDER_SECRET_VALUES = {
    "sk-...",
    "sk-proj-...",
    "api-key",
    "token",
    "xxx",
    "your-key",
    "your key",
    "your_api_key",
    "your-api-key",
}
_PLACEHOLDER_SECRET_SUBSTRINGS = (
    "your-key-here",
    "your key here",
    "your_api_key_here",
    "your-openai-api-key",
    "replace-me",
    "changeme",
    "change-me",
    "placeholder",
)


def looks_like_placeholder_secret(value: str) -> bool:
    """Return True for obvious placeholder API-key text."""
    normalized = (value or "").strip().strip('"').strip("'").lower()
    if not normalized:
        return True
    if normalized in _PLACEHOLDER_SECRET_VALUES:
        return True
    if normalized.startswith("<") and normalized.endswith(">"):
        return True
    if normalized.endswith("..."):
        return True
    return any(token in normalized for token in _PLACEHOLDER_SECRET_SUBSTRINGS)


def first_env_secret(var_names: Iterable[str]) -> str:
    """Return the first non-placeholder secret among *var_names*, or ``""``."""
    for name in var_names:
        value = (os.getenv(name) or "").strip()
        if value and not looks_like_placeholder_secret(value):
            return value
    return ""


def has_openai_auth() -> bool:
    """Detect a usable shared OpenAI key in the environment."""
    return bool(first_env_secret(OPENAI_KEY_ENV_VARS))


def build_preflight_report(settings: ModelSettings, *, base_url: str = "") -> PreflightReport:
    """Check that the dispatch mode *settings* selects has what it needs."""
    checks: list[PreflightCheck] = []
    if settings.has_custom_key:
        key = settings.custom_api_key or ""
        placeholder = looks_like_placeholder_secret(key)
        checks.append(
            PreflightCheck(
                key="custom_api_key",
                label="Custom API key looks valid",
                status="fail" if placeholder else "pass",
                detail="Placeholder key text detected." if placeholder else "Custom key provided.",
                hint="Pass a real key with --api-key." if placeholder else "",
            )
        )
        return PreflightReport(checks=checks, mode="local")

    url = (base_url or "").strip()
    checks.append(
        PreflightCheck(
            key="base_url",
            label="Remote execution endpoint configured",
            status="pass" if url else "fail",
            detail=url or "No endpoint set.",
            hint="" if url else "Set GOALRUNNER_API_URL or pass --base-url.",
        )
    )
    checks.append(
        PreflightCheck(
            key="shared_key",
            label="Shared OpenAI key available to a local server",
            status="pass" if has_openai_auth() else "warn",
            detail=(
                "Detected OPENAI_API_KEY."
                if has_openai_auth()
                else "No OPENAI_API_KEY in this environment."
            ),
            hint="" if has_openai_auth() else "Only needed when running 'goalrunner serve' here.",
        )
    )
    return PreflightReport(checks=checks, mode="remote")
