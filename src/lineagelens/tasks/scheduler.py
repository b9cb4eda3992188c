"""Background scheduler for periodic engine maintenance.

Runs each registered task in its own asyncio loop: sleep for the
interval, run, repeat. A failing run is logged and counted, then the
loop backs off briefly and continues.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from lineagelens.common.config import SchedulerSettings, get_settings
from lineagelens.common.logging import bind_context, get_logger
from lineagelens.common.metrics import (
    SCHEDULER_TASK_DURATION,
    SCHEDULER_TASK_ERRORS,
    SCHEDULER_TASK_RUNS,
)

logger = get_logger(__name__)


@dataclass
class PeriodicTask:
    """A task run at a fixed interval."""

    name: str
    interval: float
    func: Callable[[], Any]
    runs: int = 0
    errors: int = 0
    last_run_at: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": self.interval,
            "runs": self.runs,
            "errors": self.errors,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
        }


class BackgroundScheduler:
    """Runs periodic tasks on the event loop.

    Usage:
        scheduler = BackgroundScheduler()
        scheduler.add_task("cache_sweep", 1800, analyzer.sweep_expired)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self, settings: SchedulerSettings | None = None) -> None:
        """Initialize scheduler.

        Args:
            settings: Scheduler settings.
        """
        if settings is None:
            settings = get_settings().scheduler

        self._settings = settings
        self._backoff = settings.error_backoff_seconds
        self._tasks: dict[str, PeriodicTask] = {}
        self._running_tasks: dict[str, asyncio.Task] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_task_count(self) -> int:
        return sum(1 for t in self._running_tasks.values() if not t.done())

    @property
    def tasks(self) -> dict[str, PeriodicTask]:
        return dict(self._tasks)

    def add_task(self, name: str, interval: float, func: Callable[[], Any]) -> PeriodicTask:
        """Register a periodic task.

        Args:
            name: Unique task name.
            interval: Seconds between runs.
            func: Callable run on each tick; may be sync or async.

        Returns:
            The registered task.
        """
        if name in self._tasks:
            raise ValueError(f"Task already registered: {name}")
        if interval <= 0:
            raise ValueError(f"Task interval must be positive: {interval}")

        task = PeriodicTask(name=name, interval=interval, func=func)
        self._tasks[name] = task

        if self._running:
            self._spawn(task)
        return task

    async def start(self) -> None:
        """Start a loop for every registered task."""
        if self._running:
            return

        if not self._settings.enabled:
            logger.info("Background scheduler disabled")
            return

        self._running = True
        for task in self._tasks.values():
            self._spawn(task)

        logger.info("Background scheduler started", tasks=list(self._tasks))

    async def stop(self) -> None:
        """Cancel all loops and wait for them to finish."""
        self._running = False

        running = list(self._running_tasks.values())
        for task in running:
            task.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)

        for name in self._running_tasks:
            logger.info("Stopped background task", task=name)
        self._running_tasks.clear()

        logger.info("Background scheduler stopped")

    async def run_once(self, name: str) -> bool:
        """Run a task immediately, outside its schedule.

        Returns:
            True if the run succeeded.
        """
        task = self._tasks.get(name)
        if task is None:
            raise KeyError(name)
        return await self._execute(task)

    def _spawn(self, task: PeriodicTask) -> None:
        self._running_tasks[task.name] = asyncio.create_task(
            self._run_loop(task),
            name=f"lineage-{task.name}",
        )

    async def _run_loop(self, task: PeriodicTask) -> None:
        bind_context(task=task.name)
        while self._running:
            try:
                await asyncio.sleep(task.interval)
                if not await self._execute(task):
                    await asyncio.sleep(self._backoff)  # Back off on error
            except asyncio.CancelledError:
                break

    async def _execute(self, task: PeriodicTask) -> bool:
        start = time.perf_counter()
        try:
            result = task.func()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            task.errors += 1
            task.last_error = str(e)
            SCHEDULER_TASK_ERRORS.labels(task=task.name).inc()
            logger.error("Background task failed", task=task.name, error=str(e))
            return False
        finally:
            task.last_run_at = datetime.now(timezone.utc)
            SCHEDULER_TASK_DURATION.labels(task=task.name).observe(time.perf_counter() - start)

        task.runs += 1
        SCHEDULER_TASK_RUNS.labels(task=task.name).inc()
        logger.debug("Background task completed", task=task.name, runs=task.runs)
        return True
