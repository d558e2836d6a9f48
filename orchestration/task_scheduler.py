"""
Task Scheduler: Named Recurring Tasks on the Event Loop

Explicit registry for every recurring flow of the engine (batch flush
timer, cache sweep, per-schedule triggers):
- One task per name; re-scheduling a name cancels the previous task first
- Iterations of one named task never overlap
- A failing iteration is logged and the task keeps running
- A cancelled timer lets its in-flight iteration finish

Architectural Pattern: Registry + Cooperative Timers (single asyncio loop)
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from loguru import logger

TaskFn = Callable[[], Awaitable[Any]]
DelayFn = Callable[[], Optional[float]]


class TaskScheduler:
    """
    Registry of named recurring coroutines.

    Usage:
        scheduler = TaskScheduler()
        scheduler.schedule_interval("cache:sweep", 600, cache.sweep)
        ...
        await scheduler.shutdown()
    """

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}
        self._inflight: Set[asyncio.Future] = set()
        self._run_counts: Dict[str, int] = {}
        self._error_counts: Dict[str, int] = {}
        self._is_shutdown = False

    def schedule_interval(self, name: str, seconds: float, fn: TaskFn) -> asyncio.Task:
        """Run `fn` every `seconds`, first run after one interval."""
        if seconds <= 0:
            raise ValueError(f"Interval for '{name}' must be positive, got {seconds}")
        return self.schedule_at(name, lambda: seconds, fn)

    def schedule_at(self, name: str, next_delay: DelayFn, fn: TaskFn) -> asyncio.Task:
        """
        Run `fn` repeatedly, sleeping `next_delay()` seconds before each run.

        The loop ends when `next_delay` returns None.
        """
        if self._is_shutdown:
            raise RuntimeError("TaskScheduler has been shut down")

        self.cancel(name)

        task = asyncio.get_running_loop().create_task(
            self._run_loop(name, next_delay, fn), name=f"scheduler:{name}"
        )
        self._tasks[name] = task
        logger.debug(f"Scheduled recurring task '{name}'")
        return task

    def cancel(self, name: str) -> bool:
        """Cancel the timer registered under `name`, if any."""
        task = self._tasks.pop(name, None)
        if task is None:
            return False
        if not task.done():
            task.cancel()
        logger.debug(f"Cancelled recurring task '{name}'")
        return True

    def is_scheduled(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    @property
    def task_names(self) -> List[str]:
        return [name for name, task in self._tasks.items() if not task.done()]

    def get_status(self) -> Dict[str, Any]:
        return {
            "tasks": self.task_names,
            "inflight": len(self._inflight),
            "runs": dict(self._run_counts),
            "errors": dict(self._error_counts),
        }

    async def shutdown(self) -> None:
        """Cancel every timer and wait for in-flight iterations to finish."""
        self._is_shutdown = True
        tasks = list(self._tasks.values())
        self._tasks.clear()

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

        logger.info(f"TaskScheduler shut down ({len(tasks)} tasks cancelled)")

    # =========================================================================
    # LOOP
    # =========================================================================

    async def _run_loop(self, name: str, next_delay: DelayFn, fn: TaskFn) -> None:
        try:
            while True:
                delay = next_delay()
                if delay is None:
                    logger.info(f"Recurring task '{name}' has no further runs")
                    return

                await asyncio.sleep(max(0.0, delay))

                iteration = asyncio.ensure_future(self._run_once(name, fn))
                self._inflight.add(iteration)
                iteration.add_done_callback(self._inflight.discard)

                # Cancelling the timer must not abort the running iteration
                await asyncio.shield(iteration)
        finally:
            current = asyncio.current_task()
            if self._tasks.get(name) is current:
                del self._tasks[name]

    async def _run_once(self, name: str, fn: TaskFn) -> None:
        self._run_counts[name] = self._run_counts.get(name, 0) + 1
        try:
            await fn()
        except Exception as e:
            self._error_counts[name] = self._error_counts.get(name, 0) + 1
            logger.exception(f"Recurring task '{name}' failed: {e}")


__all__ = ["TaskScheduler"]
