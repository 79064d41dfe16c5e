"""Task-execution capabilities.

Both implementations share one interface so the controller can dispatch
to either without caring where the work happens:

* :class:`LocalTaskExecutor` calls the model in-process with the caller's
  own API key.
* :class:`RemoteTaskExecutor` POSTs to the execution service, which runs
  the task on the shared key.
"""

from __future__ import annotations

import abc
import asyncio
import logging

from goalrunner import llm
from goalrunner.errors import (
    ApiRequestError,
    ExecutionTransportError,
    RateLimitedError,
    TaskExecutionError,
)
from goalrunner.schemas import ExecuteTaskRequest, ModelSettings
from goalrunner.transport import DEFAULT_HTTP_TIMEOUT_S, EXECUTE_PATH, endpoint, post_json

logger = logging.getLogger(__name__)


def _to_execution_error(exc: ApiRequestError) -> TaskExecutionError:
    if exc.status_code == 429:
        return RateLimitedError(str(exc), status_code=429)
    return ExecutionTransportError(str(exc), status_code=exc.status_code)


class TaskExecutor(abc.ABC):
    """Common interface for executing one task of a goal."""

    #: Short label used in logs.
    name: str = "base"

    @abc.abstractmethod
    async def execute(self, settings: ModelSettings, goal: str, task: str) -> str:
        """Run *task* and return the textual result.

        Raises :class:`TaskExecutionError` (or a subclass) on failure.
        """


class LocalTaskExecutor(TaskExecutor):
    name = "local"

    async def execute(self, settings: ModelSettings, goal: str, task: str) -> str:
        try:
            return await asyncio.to_thread(llm.execute_task, settings, goal, task)
        except ApiRequestError as exc:
            raise _to_execution_error(exc) from exc
        except RuntimeError as exc:
            raise ExecutionTransportError(str(exc)) from exc


class RemoteTaskExecutor(TaskExecutor):
    """Executes tasks through ``POST /api/agent/execute``."""

    name = "remote"

    def __init__(self, base_url: str = "", *, timeout_s: float = DEFAULT_HTTP_TIMEOUT_S) -> None:
        self.url = endpoint(base_url, EXECUTE_PATH)
        self.timeout_s = timeout_s

    async def execute(self, settings: ModelSettings, goal: str, task: str) -> str:
        body = ExecuteTaskRequest(model_settings=settings, goal=goal, task=task)
        try:
            payload = await asyncio.to_thread(
                post_json,
                self.url,
                body.model_dump(mode="json", by_alias=True),
                timeout_s=self.timeout_s,
            )
        except ApiRequestError as exc:
            logger.warning("Remote execution failed (status=%s): %s", exc.status_code, exc)
            raise _to_execution_error(exc) from exc

        response = payload.get("response")
        if not isinstance(response, str):
            raise ExecutionTransportError(f"Missing 'response' field in reply from {self.url}")
        return response


def select_executor(settings: ModelSettings, *, base_url: str = "") -> TaskExecutor:
    """Pick local execution when the caller brought a key, remote otherwise."""
    if settings.has_custom_key:
        return LocalTaskExecutor()
    return RemoteTaskExecutor(base_url)
