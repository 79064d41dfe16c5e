"""Prompt templates for goal decomposition and task execution."""

from __future__ import annotations

import json
import re

START_GOAL_PROMPT = (
    "You are an autonomous task creation AI called {name}. You have the following "
    "objective `{goal}`. Create a list of zero to three tasks to be completed by your AI "
    "system such that your goal is more closely reached or completely reached. "
    "Return the response as an array of strings that can be used in JSON.parse()."
)

EXECUTE_TASK_PROMPT = (
    "You are an autonomous task execution AI called {name}. You have the following "
    "objective `{goal}`. You have the following tasks `{task}`. Execute the task and "
    "return the response as a string."
)

DEFAULT_AGENT_NAME = "GoalRunner"

_FENCE_RE = re.compile(r"(```|~~~)(?:json)?\s*(.*?)\1", re.DOTALL | re.IGNORECASE)


def build_start_goal_prompt(goal: str, name: str = DEFAULT_AGENT_NAME) -> str:
    return START_GOAL_PROMPT.format(name=name, goal=goal)


def build_execute_task_prompt(goal: str, task: str, name: str = DEFAULT_AGENT_NAME) -> str:
    return EXECUTE_TASK_PROMPT.format(name=name, goal=goal, task=task)


def extract_tasks(text: str) -> list[str]:
    """Parse the first JSON array of task strings out of model output.

    Code fences are unwrapped; non-string and blank entries are dropped.
    Raises :class:`ValueError` when no array can be found.
    """
    body = _FENCE_RE.sub(lambda m: m.group(2).strip(), text or "")
    start = body.find("[")
    end = body.rfind("]")
    if start == -1 or end <= start:
        raise ValueError("No task array found in model output")
    try:
        parsed = json.loads(body[start : end + 1])
    except json.JSONDecodeError as exc:
        raise ValueError(f"Task array is not valid JSON: {exc.msg}") from exc
    if not isinstance(parsed, list):
        raise ValueError("Task array is not a list")
    return [item.strip() for item in parsed if isinstance(item, str) and item.strip()]
