"""Exception taxonomy and user-facing error text for agent runs."""

from __future__ import annotations

from collections.abc import Iterator
from urllib.error import HTTPError, URLError

# ---------------------------------------------------------------------------
# User-facing notices
# ---------------------------------------------------------------------------

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please slow down. 😅"
MANUAL_SHUTDOWN_MESSAGE = "The agent has been manually shutdown."
COMPLETED_MESSAGE = "All tasks completed. Shutting down."
LOOP_LIMIT_CUSTOM_KEY_MESSAGE = (
    "This agent has maxed out on loops. To save your wallet, this agent is shutting down. "
    "You can configure the number of loops in the advanced settings."
)
LOOP_LIMIT_DEMO_MESSAGE = (
    "We're sorry, because this is a demo, we cannot have our agents running for too long. "
    "Note, if you desire longer runs, please provide your own API key in Settings. "
    "Shutting down."
)
EXECUTION_FAILED_MESSAGE = (
    "ERROR executing the current task. Please check your API key or try again later. "
    "Shutting down."
)

API_ACCESS_ERROR_MESSAGE = (
    "ERROR accessing OpenAI APIs. Please check your API key or try again later"
)
API_QUOTA_ERROR_MESSAGE = (
    "ERROR using your OpenAI API key. You've exceeded your current quota, "
    "please check your plan and billing details."
)
API_MODEL_ACCESS_ERROR_MESSAGE = (
    "ERROR your API key does not have GPT-4 access. You must first join OpenAI's "
    "wait-list. (This is different from ChatGPT Plus)"
)
INITIAL_TASKS_ERROR_MESSAGE = (
    "ERROR retrieving initial tasks array. Retry, make your goal more clear, or revise "
    "your goal such that it is within our model's policies to run. Shutting Down."
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class GoalRunnerError(Exception):
    """Base class for errors raised by this package."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ApiRequestError(GoalRunnerError):
    """A model API or remote endpoint call failed at the HTTP/network level."""


class DecompositionError(GoalRunnerError):
    """The initial task list could not be derived from the goal."""


class TaskExecutionError(GoalRunnerError):
    """Executing a single task failed."""


class RateLimitedError(TaskExecutionError):
    """The execution capability answered HTTP 429."""


class ExecutionTransportError(TaskExecutionError):
    """Any non-rate-limit failure reaching the execution capability."""


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _error_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def status_code_of(exc: BaseException) -> int | None:
    """Return the HTTP status carried anywhere in *exc*'s cause chain."""
    for err in _error_chain(exc):
        if isinstance(err, HTTPError):
            return int(err.code)
        code = getattr(err, "status_code", None)
        if isinstance(code, int):
            return code
    return None


def is_request_failure(exc: BaseException) -> bool:
    """Return True when *exc* stems from an HTTP or network failure."""
    for err in _error_chain(exc):
        if isinstance(err, (ApiRequestError, URLError)):
            return True
    return status_code_of(exc) is not None


def message_from_error(exc: BaseException) -> str:
    """Classify a decomposition failure into a human-readable notice."""
    if not is_request_failure(exc):
        return INITIAL_TASKS_ERROR_MESSAGE
    status = status_code_of(exc)
    if status == 429:
        return API_QUOTA_ERROR_MESSAGE
    if status == 404:
        return API_MODEL_ACCESS_ERROR_MESSAGE
    return API_ACCESS_ERROR_MESSAGE
