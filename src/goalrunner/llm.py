"""OpenAI chat adapter used for in-process planning and task execution.

Requires: ``pip install openai``
"""

from __future__ import annotations

import logging
from types import ModuleType
from typing import Any

from goalrunner.errors import ApiRequestError
from goalrunner.preflight import OPENAI_KEY_ENV_VARS, first_env_secret
from goalrunner.prompts import (
    DEFAULT_AGENT_NAME,
    build_execute_task_prompt,
    build_start_goal_prompt,
    extract_tasks,
)
from goalrunner.schemas import ModelSettings

logger = logging.getLogger(__name__)

CONNECTION_TEST_PROMPT = "Say this is a test"


def _openai() -> ModuleType:
    try:
        import openai
    except ImportError as exc:
        raise RuntimeError("OpenAI SDK is required. Install with: pip install openai") from exc
    return openai


def resolve_api_key(settings: ModelSettings) -> str:
    """Prefer the caller's own key, else the shared key from the environment."""
    if settings.custom_api_key:
        return settings.custom_api_key
    api_key = first_env_secret(OPENAI_KEY_ENV_VARS)
    if not api_key:
        raise RuntimeError(
            "OPENAI_API_KEY is not set. Set it in your environment or in a .env file, "
            "or provide a custom API key."
        )
    return api_key


def _get_client(settings: ModelSettings, **kwargs: Any) -> Any:
    return _openai().OpenAI(api_key=resolve_api_key(settings), **kwargs)


def _chat(settings: ModelSettings, prompt: str) -> str:
    openai = _openai()
    client = _get_client(settings)
    try:
        response = client.chat.completions.create(
            model=settings.custom_model_name,
            messages=[{"role": "user", "content": prompt}],
            temperature=settings.custom_temperature,
        )
    except openai.OpenAIError as exc:
        status = getattr(exc, "status_code", None)
        logger.warning("OpenAI request failed (status=%s): %s", status, exc)
        raise ApiRequestError(f"OpenAI request failed: {exc}", status_code=status) from exc
    return (response.choices[0].message.content or "").strip()


def start_goal(settings: ModelSettings, goal: str, name: str = DEFAULT_AGENT_NAME) -> list[str]:
    """Ask the model for the initial task list for *goal*."""
    text = _chat(settings, build_start_goal_prompt(goal, name))
    logger.debug("Decomposition output: %s", text[:500])
    return extract_tasks(text)


def execute_task(
    settings: ModelSettings,
    goal: str,
    task: str,
    name: str = DEFAULT_AGENT_NAME,
) -> str:
    """Ask the model to carry out *task* in service of *goal*."""
    return _chat(settings, build_execute_task_prompt(goal, task, name))


def test_connection(settings: ModelSettings) -> None:
    """Issue a tiny request to validate the configured key.

    Retries are disabled so a bad key fails fast.
    """
    openai = _openai()
    client = _get_client(settings, max_retries=0)
    try:
        client.chat.completions.create(
            model=settings.custom_model_name,
            messages=[{"role": "user", "content": CONNECTION_TEST_PROMPT}],
            max_tokens=7,
            temperature=0,
        )
    except openai.OpenAIError as exc:
        raise ApiRequestError(
            f"Connection test failed: {exc}",
            status_code=getattr(exc, "status_code", None),
        ) from exc


test_connection.__test__ = False  # type: ignore[attr-defined]
