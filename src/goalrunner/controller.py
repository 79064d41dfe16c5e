"""Agent controller: decomposes one goal and works through its tasks.

The :class:`AutonomousAgent` owns a single :class:`RunState` and drives it
through two phases:

1. ``run`` - emit the goal, ask the planner for the initial task list and
   announce each task.
2. ``loop`` - pop the next task, execute it, report the result, repeat
   until the queue is empty, the loop cap is hit, or the run is stopped.

Execution is strictly sequential. The only suspension points are the
planner call, the pacing sleeps and the execution call. Cancellation via
:meth:`AutonomousAgent.stop_agent` is observed at the top of every tick and
at emission time; an in-flight execution is never interrupted.

Usage::

    agent = AutonomousAgent(
        name="demo",
        goal="Write a pitch for a coffee subscription",
        render_message=print,
        shutdown=lambda: None,
        model_settings=ModelSettings(custom_api_key="sk-..."),
    )
    state = await agent.run()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from goalrunner.errors import (
    COMPLETED_MESSAGE,
    EXECUTION_FAILED_MESSAGE,
    LOOP_LIMIT_CUSTOM_KEY_MESSAGE,
    LOOP_LIMIT_DEMO_MESSAGE,
    MANUAL_SHUTDOWN_MESSAGE,
    RATE_LIMIT_MESSAGE,
    ExecutionTransportError,
    RateLimitedError,
    TaskExecutionError,
    message_from_error,
)
from goalrunner.executors import TaskExecutor, select_executor
from goalrunner.limits import resolve_max_loops
from goalrunner.planners import TaskPlanner, select_planner
from goalrunner.schemas import (
    Message,
    MessageType,
    ModelSettings,
    RunState,
    SessionContext,
    StopReason,
)

logger = logging.getLogger(__name__)

PACING_LONG_SECONDS: float = 1.0
"""Pause before and after each executed task."""

PACING_SHORT_SECONDS: float = 0.8
"""Pause before each announced task."""

MessageSink = Callable[[Message], None]
ShutdownHook = Callable[[], None]
SleepFn = Callable[[float], Awaitable[None]]


class AutonomousAgent:
    """Runs one goal to completion and streams status messages.

    Parameters
    ----------
    name:
        Opaque label for the run.
    goal:
        The goal text. Callers must reject blank goals before constructing.
    render_message:
        Sink receiving each :class:`Message` while the run is live.
    shutdown:
        Called when the run terminates.
    model_settings:
        Run configuration; fixed for the life of the run.
    session:
        Optional identity, consulted only to pick the loop-cap tier.
    planner / executor:
        Decomposition and execution capabilities. Selected from
        *model_settings* when omitted.
    base_url:
        Service URL used by the remote planner/executor.
    sleep:
        Async pacing primitive; defaults to :func:`asyncio.sleep`.
    """

    def __init__(
        self,
        name: str,
        goal: str,
        render_message: MessageSink,
        shutdown: ShutdownHook,
        model_settings: ModelSettings,
        session: SessionContext | None = None,
        *,
        planner: TaskPlanner | None = None,
        executor: TaskExecutor | None = None,
        base_url: str = "",
        sleep: SleepFn | None = None,
    ) -> None:
        self.state = RunState(name=name, goal=goal.strip())
        self.render_message = render_message
        self.shutdown = shutdown
        self.model_settings = model_settings
        self.session = session
        self.planner = planner or select_planner(model_settings, base_url=base_url)
        self.executor = executor or select_executor(model_settings, base_url=base_url)
        self._sleep: SleepFn = sleep or asyncio.sleep

    @property
    def name(self) -> str:
        return self.state.name

    @property
    def goal(self) -> str:
        return self.state.goal

    @property
    def id(self) -> str:
        return self.state.identity

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    @property
    def max_loops(self) -> int:
        return resolve_max_loops(self.model_settings, self.session)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def run(self) -> RunState:
        """Decompose the goal, then execute tasks until a terminal state."""
        logger.info("[%s] Starting run: goal=%r", self.id, self.goal)
        self.send_goal_message()
        self.send_thinking_message()

        try:
            tasks = await self.planner.start_goal(self.model_settings, self.goal)
            self.state.tasks = list(tasks)
            for task in self.state.tasks:
                await self._sleep(PACING_SHORT_SECONDS)
                self.send_task_message(task)
        except Exception as exc:
            logger.warning("[%s] Decomposition failed: %s", self.id, exc, exc_info=True)
            self._terminate(StopReason.DECOMPOSITION_FAILED, message_from_error(exc))
            return self.state

        try:
            await self.loop()
        except TaskExecutionError as exc:
            logger.error("[%s] Run aborted by execution failure: %s", self.id, exc)
        logger.info(
            "[%s] Run finished: %s (%d tasks executed)",
            self.id,
            self.state.stop_reason.value if self.state.stop_reason else "stopped",
            len(self.state.dispatched_tasks),
        )
        return self.state

    async def loop(self) -> None:
        """Execute queued tasks one tick at a time."""
        while True:
            logger.debug(
                "[%s] Loop %d, %d queued", self.id, self.state.num_loops, len(self.state.tasks)
            )
            if not self.state.is_running:
                return

            if not self.state.tasks:
                self._terminate(StopReason.COMPLETED, COMPLETED_MESSAGE)
                return

            self.state.num_loops += 1
            if self.state.num_loops > self.max_loops:
                self._terminate(StopReason.MAX_LOOPS, self._loop_limit_text())
                return

            await self._sleep(PACING_LONG_SECONDS)

            current_task = self.state.tasks[0]
            self.state.completed_tasks.append(current_task)
            self.state.dispatched_tasks.append(current_task)
            self.state.tasks.pop(0)
            self.send_thinking_message()

            result = await self.execute_task(current_task)
            self.send_execution_message(current_task, result)

            await self._sleep(PACING_LONG_SECONDS)

    async def execute_task(self, task: str) -> str:
        """Dispatch *task*; on failure shut the run down and re-raise."""
        logger.info("[%s] Executing task via %s: %r", self.id, self.executor.name, task)
        try:
            return await self.executor.execute(self.model_settings, self.goal, task)
        except RateLimitedError:
            self._terminate(StopReason.RATE_LIMITED, RATE_LIMIT_MESSAGE)
            raise
        except TaskExecutionError:
            self._terminate(StopReason.EXECUTION_FAILED, EXECUTION_FAILED_MESSAGE)
            raise
        except Exception as exc:
            logger.warning("[%s] Executor %s raised %r", self.id, self.executor.name, exc)
            self._terminate(StopReason.EXECUTION_FAILED, EXECUTION_FAILED_MESSAGE)
            raise ExecutionTransportError(f"Task execution failed: {exc}") from exc

    def stop_agent(self) -> None:
        """Stop the run from outside. Shutdown fires on every call."""
        logger.info("[%s] Manual stop requested", self.id)
        self.send_manual_shutdown_message()
        self.state.finish(StopReason.USER_ABORT)
        self.shutdown()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _terminate(self, reason: StopReason, text: str) -> None:
        if not self.state.is_running:
            return
        self.send_error_message(text)
        self.state.finish(reason)
        logger.info("[%s] Shutting down: %s", self.id, reason.value)
        self.shutdown()

    def _loop_limit_text(self) -> str:
        if self.model_settings.has_custom_key:
            return LOOP_LIMIT_CUSTOM_KEY_MESSAGE
        return LOOP_LIMIT_DEMO_MESSAGE

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def send_message(self, message: Message) -> None:
        if self.state.is_running:
            self.render_message(message)

    def send_goal_message(self) -> None:
        self.send_message(Message(type=MessageType.GOAL, value=self.goal))

    def send_thinking_message(self) -> None:
        self.send_message(Message(type=MessageType.THINKING, value=""))

    def send_task_message(self, task: str) -> None:
        self.send_message(Message(type=MessageType.TASK, value=task))

    def send_execution_message(self, task: str, execution: str) -> None:
        self.send_message(
            Message(type=MessageType.ACTION, info=f'Executing "{task}"', value=execution)
        )

    def send_action_message(self, info: str) -> None:
        self.send_message(Message(type=MessageType.ACTION, info=info, value=""))

    def send_error_message(self, error: str) -> None:
        self.send_message(Message(type=MessageType.SYSTEM, value=error))

    def send_completed_message(self) -> None:
        self.send_error_message(COMPLETED_MESSAGE)

    def send_loop_message(self) -> None:
        self.send_error_message(self._loop_limit_text())

    def send_manual_shutdown_message(self) -> None:
        self.send_error_message(MANUAL_SHUTDOWN_MESSAGE)


def run_agent(
    goal: str,
    render_message: MessageSink,
    model_settings: ModelSettings,
    *,
    name: str = "",
    shutdown: ShutdownHook | None = None,
    session: SessionContext | None = None,
    planner: TaskPlanner | None = None,
    executor: TaskExecutor | None = None,
    base_url: str = "",
) -> RunState:
    """Synchronous wrapper around :meth:`AutonomousAgent.run`."""
    agent = AutonomousAgent(
        name,
        goal,
        render_message,
        shutdown or (lambda: None),
        model_settings,
        session,
        planner=planner,
        executor=executor,
        base_url=base_url,
    )
    return asyncio.run(agent.run())
