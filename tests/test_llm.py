"""Tests for the OpenAI chat adapter, using a fake SDK module."""

from __future__ import annotations

import sys
import types
from typing import Any

import pytest

import goalrunner.llm as llm
from goalrunner.errors import ApiRequestError
from goalrunner.schemas import ModelSettings


def _install_fake_openai(
    monkeypatch: pytest.MonkeyPatch,
    *,
    content: str = "ok",
) -> dict[str, Any]:
    """Install a minimal ``openai`` module and return the recorded calls."""
    record: dict[str, Any] = {"clients": [], "requests": []}
    module = types.ModuleType("openai")

    class _OpenAIError(Exception):
        pass

    class _APIStatusError(_OpenAIError):
        def __init__(self, message: str, status_code: int) -> None:
            super().__init__(message)
            self.status_code = status_code

    class _Completions:
        def create(self, **kwargs: Any) -> Any:
            record["requests"].append(kwargs)
            if record.get("error") is not None:
                raise record["error"]
            message = types.SimpleNamespace(content=content)
            return types.SimpleNamespace(choices=[types.SimpleNamespace(message=message)])

    class _FakeOpenAI:
        def __init__(self, *, api_key: str, **kwargs: Any) -> None:
            record["clients"].append({"api_key": api_key, **kwargs})
            self.chat = types.SimpleNamespace(completions=_Completions())

    module.OpenAI = _FakeOpenAI  # type: ignore[attr-defined]
    module.OpenAIError = _OpenAIError  # type: ignore[attr-defined]
    module.APIStatusError = _APIStatusError  # type: ignore[attr-defined]
    monkeypatch.setitem(sys.modules, "openai", module)
    return record


def test_execute_task_uses_custom_key_and_model(monkeypatch: pytest.MonkeyPatch) -> None:
    record = _install_fake_openai(monkeypatch, content="  the answer  ")
    settings = ModelSettings(
        custom_api_key="sk-mine", custom_model_name="gpt-4", custom_temperature=0.2
    )

    result = llm.execute_task(settings, "the goal", "the task")

    assert result == "the answer"
    assert record["clients"] == [{"api_key": "sk-mine"}]
    request = record["requests"][0]
    assert request["model"] == "gpt-4"
    assert request["temperature"] == 0.2
    prompt = request["messages"][0]["content"]
    assert "the goal" in prompt
    assert "the task" in prompt


def test_shared_env_key_is_used_without_custom_key(monkeypatch: pytest.MonkeyPatch) -> None:
    record = _install_fake_openai(monkeypatch)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-shared-secret")

    llm.execute_task(ModelSettings(), "g", "t")

    assert record["clients"][0]["api_key"] == "sk-shared-secret"


def test_placeholder_env_key_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_fake_openai(monkeypatch)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-proj-your-key-here")

    with pytest.raises(RuntimeError, match="OPENAI_API_KEY is not set"):
        llm.execute_task(ModelSettings(), "g", "t")


def test_start_goal_parses_task_array(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_fake_openai(monkeypatch, content='```json\n["Research", "Draft"]\n```')

    tasks = llm.start_goal(ModelSettings(custom_api_key="sk-mine"), "write a report")

    assert tasks == ["Research", "Draft"]


def test_sdk_errors_are_wrapped_with_status(monkeypatch: pytest.MonkeyPatch) -> None:
    record = _install_fake_openai(monkeypatch)
    error = sys.modules["openai"].APIStatusError("rate limited", status_code=429)
    record["error"] = error

    with pytest.raises(ApiRequestError) as excinfo:
        llm.execute_task(ModelSettings(custom_api_key="sk-mine"), "g", "t")

    assert excinfo.value.status_code == 429
    assert excinfo.value.__cause__ is error


def test_connection_check_disables_retries(monkeypatch: pytest.MonkeyPatch) -> None:
    record = _install_fake_openai(monkeypatch)

    llm.test_connection(ModelSettings(custom_api_key="sk-mine", custom_model_name="gpt-4"))

    assert record["clients"] == [{"api_key": "sk-mine", "max_retries": 0}]
    request = record["requests"][0]
    assert request["max_tokens"] == 7
    assert request["temperature"] == 0
    assert request["messages"][0]["content"] == llm.CONNECTION_TEST_PROMPT
