"""goalrunner - decompose a goal into tasks and execute them one at a time."""

from importlib.metadata import PackageNotFoundError, version

from goalrunner.schemas import Message, MessageType, ModelSettings, RunState, StopReason

__all__ = ["Message", "MessageType", "ModelSettings", "RunState", "StopReason"]

try:
    __version__ = version("goalrunner")
except PackageNotFoundError:
    __version__ = "0.0.0"
