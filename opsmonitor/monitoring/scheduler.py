"""
Background scheduler for periodic monitoring work.

The scheduler owns one asyncio event loop running in a daemon thread. Named
periodic tasks run as coroutines on that loop: each task sleeps for its
interval, then awaits its body, so a task never overlaps with itself. Every
run goes through run_task(), the per-task error boundary, which logs and
counts failures and never stops the timer.

One-shot timers (call_later) are used for alert expiry, and run_coroutine()
lets synchronous Flask views execute coroutines on the scheduler loop.

Tests drive the scheduler deterministically with ``await scheduler.run_task(name)``
without starting the thread.
"""

import asyncio
import concurrent.futures
import inspect
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from opsmonitor.monitoring.exceptions import SchedulerError, UnknownTaskError
from opsmonitor.monitoring.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PeriodicTask:
    """A named periodic task and its execution statistics."""

    name: str
    interval: float
    func: Callable[[], Any]
    runs: int = 0
    failures: int = 0
    last_run: Optional[datetime] = None
    last_duration_ms: Optional[float] = None
    last_error: Optional[str] = None
    handle: Optional[asyncio.Task] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'interval_seconds': self.interval,
            'runs': self.runs,
            'failures': self.failures,
            'last_run': self.last_run.isoformat() if self.last_run else None,
            'last_duration_ms': self.last_duration_ms,
            'last_error': self.last_error,
        }


class MonitoringScheduler:
    """
    Runs named periodic tasks and one-shot timers on a background event loop.
    """

    THREAD_NAME = 'opsmonitor-scheduler'

    def __init__(self):
        self._tasks: Dict[str, PeriodicTask] = {}
        self._lock = threading.RLock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    # Task registration

    def add_task(self, name: str, interval: float, func: Callable[[], Any]) -> PeriodicTask:
        """
        Register a periodic task.

        ``func`` may be a plain callable or a coroutine function. If the
        scheduler is already running the task starts immediately.

        Raises:
            SchedulerError: If the name is taken or the interval is not positive
        """
        if interval <= 0:
            raise SchedulerError(
                f"Interval for task '{name}' must be positive",
                details={'task': name, 'interval': interval}
            )

        with self._lock:
            if name in self._tasks:
                raise SchedulerError(f"Task '{name}' is already registered", details={'task': name})
            task = PeriodicTask(name=name, interval=interval, func=func)
            self._tasks[name] = task

        if self.is_running:
            self._loop.call_soon_threadsafe(self._start_task, task)

        logger.debug("Periodic task registered", task=name, interval_seconds=interval)
        return task

    def cancel_task(self, name: str) -> None:
        """
        Stop and unregister a periodic task.

        Raises:
            UnknownTaskError: If no task has that name
        """
        with self._lock:
            task = self._tasks.pop(name, None)
        if task is None:
            raise UnknownTaskError(name)

        if task.handle is not None and self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(task.handle.cancel)
        logger.debug("Periodic task cancelled", task=name)

    def get_task(self, name: str) -> PeriodicTask:
        with self._lock:
            task = self._tasks.get(name)
        if task is None:
            raise UnknownTaskError(name)
        return task

    def task_names(self):
        with self._lock:
            return list(self._tasks)

    # Execution

    async def run_task(self, name: str) -> bool:
        """
        Execute one run of a task inside its error boundary.

        Returns:
            True if the run completed, False if it raised

        Raises:
            UnknownTaskError: If no task has that name
        """
        task = self.get_task(name)
        started = time.perf_counter()

        try:
            result = task.func()
            if inspect.isawaitable(result):
                await result
            task.last_error = None
            success = True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            task.failures += 1
            task.last_error = str(e)
            success = False
            logger.error(
                "Periodic task failed",
                task=name,
                error=str(e),
                error_type=type(e).__name__,
                failures=task.failures,
                exc_info=True
            )
        finally:
            task.runs += 1
            task.last_run = datetime.now(timezone.utc)
            task.last_duration_ms = round((time.perf_counter() - started) * 1000, 2)

        return success

    def trigger(self, name: str) -> Optional[concurrent.futures.Future]:
        """
        Run a task once on the scheduler loop without waiting for it.

        Returns:
            The future of the run, or None when the scheduler is not running
        """
        self.get_task(name)
        if not self.is_running:
            return None
        return asyncio.run_coroutine_threadsafe(self.run_task(name), self._loop)

    async def _run_periodic(self, task: PeriodicTask) -> None:
        while True:
            await asyncio.sleep(task.interval)
            await self.run_task(task.name)

    def _start_task(self, task: PeriodicTask) -> None:
        task.handle = self._loop.create_task(self._run_periodic(task))

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return (
            self._loop is not None
            and self._thread is not None
            and self._thread.is_alive()
            and self._loop.is_running()
        )

    def start(self) -> None:
        """Start the background event loop and every registered task."""
        if self.is_running:
            return

        self._ready.clear()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop,
            name=self.THREAD_NAME,
            daemon=True
        )
        self._thread.start()
        self._ready.wait(timeout=5)

        with self._lock:
            tasks = list(self._tasks.values())
        for task in tasks:
            self._loop.call_soon_threadsafe(self._start_task, task)

        logger.info("Monitoring scheduler started", tasks=[task.name for task in tasks])

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self._ready.set)
        try:
            self._loop.run_forever()
        finally:
            pending = [t for t in asyncio.all_tasks(self._loop) if not t.done()]
            for pending_task in pending:
                pending_task.cancel()
            if pending:
                self._loop.run_until_complete(
                    asyncio.gather(*pending, return_exceptions=True)
                )
            self._loop.close()

    def stop(self, timeout: float = 5.0) -> None:
        """Cancel all tasks and pending timers and stop the loop thread."""
        if self._loop is None or self._thread is None:
            return

        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=timeout)

        with self._lock:
            for task in self._tasks.values():
                task.handle = None

        self._thread = None
        self._loop = None
        logger.info("Monitoring scheduler stopped")

    # Timers and bridging

    def call_later(self, delay: float, callback: Callable[[], Any]) -> bool:
        """
        Schedule a one-shot callback on the scheduler loop.

        Returns:
            False when the scheduler is not running and nothing was scheduled
        """
        if not self.is_running:
            return False

        loop = self._loop
        loop.call_soon_threadsafe(loop.call_later, delay, self._guarded(callback))
        return True

    @staticmethod
    def _guarded(callback: Callable[[], Any]) -> Callable[[], None]:
        def run():
            try:
                callback()
            except Exception as e:
                logger.error("Scheduled callback failed", error=str(e), exc_info=True)
        return run

    def run_coroutine(self, coro: Awaitable[Any], timeout: Optional[float] = None) -> Any:
        """
        Run a coroutine to completion from synchronous code.

        Uses the scheduler loop when it is running, otherwise a fresh event loop.

        Raises:
            asyncio.TimeoutError / concurrent.futures.TimeoutError: When ``timeout`` elapses
        """
        if self.is_running and threading.current_thread() is not self._thread:
            future = asyncio.run_coroutine_threadsafe(coro, self._loop)
            try:
                return future.result(timeout=timeout)
            except Exception:
                future.cancel()
                raise

        if timeout is not None:
            coro = asyncio.wait_for(coro, timeout)
        return asyncio.run(coro)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            tasks = {name: task.to_dict() for name, task in self._tasks.items()}
        return {'running': self.is_running, 'tasks': tasks}


__all__ = ['PeriodicTask', 'MonitoringScheduler']
