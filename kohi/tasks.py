"""Fire-and-forget task bookkeeping.

Webhook events are processed as independent tasks so one slow user
never blocks another. ``TaskTracker`` keeps a reference to each one
until it finishes and lets shutdown wait for the stragglers.
"""

import asyncio
from typing import Coroutine, Optional, Set

import structlog

logger = structlog.get_logger("kohi.bot")


def log_task_exception(task: asyncio.Task):
    """Log exceptions from fire-and-forget tasks instead of silently swallowing them."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error(
            "background_task_failed",
            task=task.get_name(),
            error=str(exc),
            exc_type=type(exc).__name__,
        )


class TaskTracker:
    """Holds running tasks until they complete."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(log_task_exception)
        return task

    def __len__(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 30.0) -> None:
        """Wait for pending tasks; cancel whatever is left after *timeout*."""
        if not self._tasks:
            return
        pending = set(self._tasks)
        logger.info("draining_tasks", count=len(pending))
        done, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("tasks_cancelled_on_shutdown", count=len(still_running))
            await asyncio.gather(*still_running, return_exceptions=True)
