"""Pydantic models for the agent's messages, settings, and run state."""

from __future__ import annotations

import datetime as dt
import os
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MODEL_NAME: str = os.getenv("GOALRUNNER_MODEL", "").strip() or "gpt-3.5-turbo"
DEFAULT_TEMPERATURE: float = 0.9


def _utc_now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Messages streamed to the consumer
# ---------------------------------------------------------------------------

class MessageType(str, Enum):
    """Kinds of status messages a run emits."""

    GOAL = "goal"
    THINKING = "thinking"
    TASK = "task"
    ACTION = "action"
    SYSTEM = "system"


class Message(BaseModel):
    """A single status message delivered to the message sink."""

    type: MessageType
    value: str = ""
    info: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form, omitting ``info`` when unset."""
        return self.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# Configuration & identity context
# ---------------------------------------------------------------------------

class ModelSettings(BaseModel):
    """Caller-supplied run configuration.

    Field names follow Python conventions; the camelCase aliases are what the
    settings store and the remote execution endpoint exchange.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    custom_api_key: str | None = Field(default=None, alias="customApiKey")
    custom_model_name: str = Field(default=DEFAULT_MODEL_NAME, alias="customModelName")
    custom_temperature: float = Field(default=DEFAULT_TEMPERATURE, alias="customTemperature")
    custom_max_loops: int | None = Field(default=None, alias="customMaxLoops")

    @field_validator("custom_api_key", mode="before")
    @classmethod
    def _blank_key_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("custom_model_name", mode="before")
    @classmethod
    def _blank_model_uses_default(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_MODEL_NAME
        return value

    @property
    def has_custom_key(self) -> bool:
        """True when the caller brought their own execution credential."""
        return bool(self.custom_api_key)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys for HTTP bodies."""
        return self.model_dump(mode="json", by_alias=True)


class SessionContext(BaseModel):
    """Authenticated identity, consulted only to pick the loop-cap tier."""

    model_config = ConfigDict(frozen=True)

    user_id: str | None = None
    subscription_id: str | None = None

    @property
    def is_paid(self) -> bool:
        return bool(self.subscription_id)


# ---------------------------------------------------------------------------
# Run state
# ---------------------------------------------------------------------------

class StopReason(str, Enum):
    """Why a run reached its terminal state."""

    COMPLETED = "completed"
    MAX_LOOPS = "max_loops"
    USER_ABORT = "user_abort"
    DECOMPOSITION_FAILED = "decomposition_failed"
    RATE_LIMITED = "rate_limited"
    EXECUTION_FAILED = "execution_failed"


class RunState(BaseModel):
    """Mutable state owned by one controller for one goal."""

    identity: str = Field(default_factory=lambda: uuid.uuid4().hex, frozen=True)
    name: str = ""
    goal: str = Field(frozen=True)
    tasks: list[str] = Field(default_factory=list)
    completed_tasks: list[str] = Field(default_factory=list)
    dispatched_tasks: list[str] = Field(default_factory=list)
    num_loops: int = 0
    is_running: bool = True
    stop_reason: StopReason | None = None
    started_at: str = Field(default_factory=_utc_now)
    finished_at: str | None = None

    def finish(self, reason: StopReason) -> None:
        """Mark the run terminal. Later calls keep the first reason."""
        self.is_running = False
        if self.stop_reason is None:
            self.stop_reason = reason
            self.finished_at = _utc_now()


# ---------------------------------------------------------------------------
# Remote wire bodies
# ---------------------------------------------------------------------------

class StartGoalRequest(BaseModel):
    """Body of ``POST /api/agent/start``."""

    model_config = ConfigDict(populate_by_name=True)

    model_settings: ModelSettings = Field(default_factory=ModelSettings, alias="modelSettings")
    goal: str

    @field_validator("goal")
    @classmethod
    def _goal_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("goal must be a non-empty string")
        return value


class StartGoalResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    new_tasks: list[str] = Field(default_factory=list, alias="newTasks")


class ExecuteTaskRequest(StartGoalRequest):
    """Body of ``POST /api/agent/execute``."""

    task: str


class ExecuteTaskResponse(BaseModel):
    response: str = ""
