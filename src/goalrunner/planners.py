"""Goal decomposition: turning a goal into the initial ordered task list."""

from __future__ import annotations

import abc
import asyncio
import logging
from collections.abc import Sequence

from goalrunner import llm
from goalrunner.errors import ApiRequestError, DecompositionError
from goalrunner.schemas import ModelSettings, StartGoalRequest, StartGoalResponse
from goalrunner.transport import DEFAULT_HTTP_TIMEOUT_S, START_PATH, endpoint, post_json

logger = logging.getLogger(__name__)

DEFAULT_TASKS: tuple[str, ...] = (
    "Introduction",
    "Concept",
    "Problem it aims to solve",
    "Target audience",
    "Unique selling point",
    "Competitors",
    "Market fit",
    "Specific details to consider",
)
"""Fixed outline used by :class:`StaticPlanner`."""


class TaskPlanner(abc.ABC):
    """Common interface for the decomposition step."""

    name: str = "base"

    @abc.abstractmethod
    async def start_goal(self, settings: ModelSettings, goal: str) -> list[str]:
        """Return the ordered task descriptions for *goal*.

        Raises :class:`DecompositionError` on failure.
        """


class StaticPlanner(TaskPlanner):
    """Seeds every run with the same outline, regardless of the goal."""

    name = "static"

    def __init__(self, tasks: Sequence[str] = DEFAULT_TASKS) -> None:
        self.tasks = [t.strip() for t in tasks if t and t.strip()]

    async def start_goal(self, settings: ModelSettings, goal: str) -> list[str]:
        return list(self.tasks)


class LocalPlanner(TaskPlanner):
    name = "local"

    async def start_goal(self, settings: ModelSettings, goal: str) -> list[str]:
        try:
            return await asyncio.to_thread(llm.start_goal, settings, goal)
        except (ApiRequestError, RuntimeError, ValueError) as exc:
            raise DecompositionError(f"Could not derive tasks: {exc}") from exc


class RemotePlanner(TaskPlanner):
    """Asks the service for the task list via ``POST /api/agent/start``."""

    name = "remote"

    def __init__(self, base_url: str = "", *, timeout_s: float = DEFAULT_HTTP_TIMEOUT_S) -> None:
        self.url = endpoint(base_url, START_PATH)
        self.timeout_s = timeout_s

    async def start_goal(self, settings: ModelSettings, goal: str) -> list[str]:
        body = StartGoalRequest(model_settings=settings, goal=goal)
        try:
            payload = await asyncio.to_thread(
                post_json,
                self.url,
                body.model_dump(mode="json", by_alias=True),
                timeout_s=self.timeout_s,
            )
        except ApiRequestError as exc:
            raise DecompositionError(
                f"Remote decomposition failed: {exc}", status_code=exc.status_code
            ) from exc

        raw_tasks = payload.get("newTasks")
        if not isinstance(raw_tasks, list):
            raise DecompositionError(f"Missing 'newTasks' array in reply from {self.url}")
        parsed = StartGoalResponse(newTasks=[t for t in raw_tasks if isinstance(t, str)])
        return [t.strip() for t in parsed.new_tasks if t.strip()]


def select_planner(settings: ModelSettings, *, base_url: str = "") -> TaskPlanner:
    """Mirror :func:`goalrunner.executors.select_executor` for decomposition."""
    if settings.has_custom_key:
        return LocalPlanner()
    return RemotePlanner(base_url)
