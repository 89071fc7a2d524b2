"""Background task infrastructure — fire-and-forget runner and single-flight guard."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Coroutine, Hashable, TypeVar

import structlog

from stackanalysis.shared.exceptions import AnalysisInProgressError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def _run_with_logging(name: str, coro: Awaitable[T]) -> T:
    try:
        result = await coro
        logger.info("task_completed", name=name)
        return result
    except asyncio.CancelledError:
        logger.info("task_cancelled", name=name)
        raise
    except Exception as e:
        logger.error("task_failed", name=name, error=str(e))
        raise


class TaskRunner:
    """Simple async background task runner."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}

    def submit(self, name: str, coro: Coroutine) -> asyncio.Task:
        existing = self._tasks.get(name)
        if existing is not None and not existing.done():
            logger.warning("task_already_running", name=name)
            coro.close()
            return existing
        task = asyncio.create_task(_run_with_logging(name, coro), name=name)
        self._tasks[name] = task
        logger.info("task_submitted", name=name)
        return task


class SingleFlight:
    """At most one in-flight coroutine per key.

    A caller arriving while the key is busy awaits the running task and gets
    its result.  The task is shielded so a cancelled joiner does not cancel
    the owner's work.
    """

    def __init__(self) -> None:
        self._flights: dict[Hashable, asyncio.Task] = {}

    def in_flight(self, key: Hashable) -> bool:
        task = self._flights.get(key)
        return task is not None and not task.done()

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]], *, join: bool = True) -> T:
        task = self._flights.get(key)
        if task is not None and not task.done():
            if not join:
                raise AnalysisInProgressError(context={"key": repr(key)})
            logger.info("flight_joined", key=repr(key))
            return await asyncio.shield(task)

        task = asyncio.create_task(_run_with_logging(f"flight:{key!r}", factory()))
        self._flights[key] = task
        task.add_done_callback(lambda t, k=key: self._release(k, t))
        return await asyncio.shield(task)

    def cancel(self, key: Hashable) -> bool:
        task = self._flights.get(key)
        if task and not task.done():
            task.cancel()
            return True
        return False

    def _release(self, key: Hashable, task: asyncio.Task) -> None:
        if self._flights.get(key) is task:
            del self._flights[key]


# Singleton
_runner: TaskRunner | None = None


def get_task_runner() -> TaskRunner:
    global _runner
    if _runner is None:
        _runner = TaskRunner()
    return _runner


__all__ = ["SingleFlight", "TaskRunner", "get_task_runner"]
