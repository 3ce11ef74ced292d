from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence

from cladeflow.errors import TaskError
from cladeflow.utils.logging import log_event

logger = logging.getLogger(__name__)

MAX_RECORDED_ERRORS = 100

TaskFactory = Callable[[], Awaitable[None]]
ErrorHandler = Callable[[TaskError], Optional[Awaitable[None]]]


class SupervisorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class TaskSet:
    """Independent long-running tasks supervised as one unit.

    `run()` starts every task and waits. The first failure cancels the
    remaining tasks and is re-raised. Instances are single-use; the supervisor
    builds a fresh one for every attempt.
    """

    def __init__(self, factories: Sequence[TaskFactory], name: str = "task-set") -> None:
        self._factories = list(factories)
        self.name = name
        self._started = False

    async def run(self) -> None:
        if self._started:
            raise RuntimeError(f"{self.name} has already been started")
        self._started = True
        tasks = [
            asyncio.create_task(factory(), name=f"{self.name}:{i}")
            for i, factory in enumerate(self._factories)
        ]
        if not tasks:
            return
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            await _cancel_all(tasks)
            raise

        failed = [t for t in tasks if t in done and not t.cancelled() and t.exception() is not None]
        if failed:
            await _cancel_all(pending)
            raise failed[0].exception()


async def _cancel_all(tasks) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


def compose(*factories: TaskFactory, name: str = "task-set") -> Callable[[], TaskSet]:
    """A factory producing a new TaskSet of `factories` on every call."""
    return lambda: TaskSet(factories, name=name)


class Supervisor:
    """Keep a task set alive across failures.

    Every failure is wrapped in TaskError, handed to `on_error` and followed by
    an immediate restart with a new task set. The report is always delivered
    before the restart begins. There is no backoff and no restart limit. The
    loop ends when the task set completes normally or when the stop event is
    set; the event is checked before each (re)start. Cancellation of the
    supervising task propagates.
    """

    def __init__(
        self,
        task_set_factory: Callable[[], TaskSet],
        on_error: ErrorHandler,
        stop_event: Optional[asyncio.Event] = None,
        name: str = "supervisor",
    ) -> None:
        self._task_set_factory = task_set_factory
        self._on_error = on_error
        self._stop = stop_event or asyncio.Event()
        self.name = name
        self.state = SupervisorState.IDLE
        self.attempts = 0
        self.restarts = 0
        self.errors: deque[TaskError] = deque(maxlen=MAX_RECORDED_ERRORS)

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop

    def stop(self) -> None:
        self._stop.set()

    async def run(self) -> None:
        try:
            while not self._stop.is_set():
                if self.attempts:
                    self.state = SupervisorState.RESTARTING
                    self.restarts += 1
                    log_event("supervisor.restart", {"name": self.name, "restarts": self.restarts})
                self.attempts += 1
                self.state = SupervisorState.RUNNING
                try:
                    await self._task_set_factory().run()
                except Exception as exc:  # noqa: BLE001
                    self.state = SupervisorState.FAILED
                    error = TaskError(exc, attempt=self.attempts)
                    self.errors.append(error)
                    await self._report(error)
                    # yield so a tight failure loop cannot starve other tasks
                    await asyncio.sleep(0)
                    continue
                break
        finally:
            self.state = SupervisorState.STOPPED

    async def _report(self, error: TaskError) -> None:
        logger.error("%s: task set failed on attempt %d: %s", self.name, error.attempt, error)
        log_event(
            "supervisor.task_failed",
            {"name": self.name, "attempt": error.attempt, "error": str(error)},
        )
        try:
            outcome = self._on_error(error)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:  # noqa: BLE001
            logger.exception("%s: error handler raised while reporting %s", self.name, error)


async def auto_restart(
    factory: TaskFactory,
    on_error: ErrorHandler,
    stop_event: Optional[asyncio.Event] = None,
) -> Supervisor:
    """Supervise a single coroutine factory. Returns the finished supervisor."""
    supervisor = Supervisor(compose(factory), on_error, stop_event)
    await supervisor.run()
    return supervisor
