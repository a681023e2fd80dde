"""
Fire-and-forget runner for post-turn work.
"""

import asyncio
import logging
from typing import Awaitable, Optional, Set

from src.companion.utils.metrics import background_task_counter

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """
    Schedules coroutines without awaiting them.

    Holds a reference to every in-flight task so none is garbage collected
    mid-run. Failures and timeouts are logged and counted, never raised.
    """

    def __init__(self, default_timeout: Optional[float] = 45.0):
        self.default_timeout = default_timeout
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, coro: Awaitable, timeout: Optional[float] = None) -> asyncio.Task:
        """
        Schedule a coroutine on the running loop.

        Args:
            name: Task label for logs and metrics
            coro: Coroutine to run
            timeout: Seconds before the task is cancelled, defaults to the runner's

        Returns:
            The scheduled task
        """
        task = asyncio.create_task(self._guarded(name, coro, timeout or self.default_timeout), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guarded(self, name: str, coro: Awaitable, timeout: Optional[float]):
        try:
            if timeout:
                await asyncio.wait_for(coro, timeout=timeout)
            else:
                await coro
            background_task_counter.labels(task=name, status="success").inc()
        except asyncio.TimeoutError:
            logger.warning(f"Background task {name} timed out after {timeout}s")
            background_task_counter.labels(task=name, status="timeout").inc()
        except asyncio.CancelledError:
            background_task_counter.labels(task=name, status="cancelled").inc()
            raise
        except Exception as e:
            logger.error(f"Background task {name} failed: {e}", exc_info=True)
            background_task_counter.labels(task=name, status="error").inc()

    async def drain(self, timeout: Optional[float] = None):
        """Wait for every in-flight task, e.g. at shutdown or in tests."""
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)

    async def cancel_all(self):
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
