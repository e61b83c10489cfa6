"""
Detached task dispatcher for notifications.

WHAT: Runs notification coroutines in the background, independent of the
request that produced them.

WHY: Ticket updates must respond without waiting for email or SMS, and a
client disconnecting must not cancel a notification already promised.
asyncio only keeps weak references to tasks, so fire-and-forget tasks need
an owner or they can be garbage-collected mid-flight.

HOW:
- asyncio.create_task, with the task held in a set until it finishes
- Every exception is caught and logged inside the task
- An optional semaphore caps how many notifications run at once
- drain() waits for outstanding work (application shutdown, tests)
"""

import asyncio
import logging
from typing import Coroutine, Optional, Set

from workorders.core.config import settings

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Owner of detached notification tasks.

    Example:
        dispatcher.submit(notifier.notify_status_change(notice), name="status:1042")
    """

    def __init__(self, max_concurrency: int = 0):
        """
        Args:
            max_concurrency: Upper bound on concurrently running tasks (0 = unbounded)
        """
        self._tasks: Set[asyncio.Task] = set()
        self._semaphore: Optional[asyncio.Semaphore] = (
            asyncio.Semaphore(max_concurrency) if max_concurrency > 0 else None
        )

    @property
    def pending(self) -> int:
        """Number of tasks not yet finished."""
        return len(self._tasks)

    def submit(self, coro: Coroutine, name: str = "notification") -> asyncio.Task:
        """
        Schedule coro as a detached task.

        The returned task never raises: failures are logged and dropped.
        """
        task = asyncio.create_task(self._run(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Dispatched {name} ({self.pending} pending)")
        return task

    async def _run(self, coro: Coroutine, name: str) -> None:
        try:
            if self._semaphore is None:
                await coro
            else:
                async with self._semaphore:
                    await coro
        except asyncio.CancelledError:
            logger.warning(f"Notification task {name} cancelled")
            raise
        except Exception:
            logger.exception(f"Notification task {name} failed")

    async def drain(self, timeout: Optional[float] = None) -> None:
        """
        Wait for outstanding tasks.

        Args:
            timeout: Seconds to wait; tasks still running afterwards are left alone
        """
        if not self._tasks:
            return
        logger.info(f"Draining {self.pending} notification task(s)")
        done, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_running:
            logger.warning(f"{len(still_running)} notification task(s) still running after drain timeout")


# Module-level singleton
_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    """
    Get or create the process-wide dispatcher.

    Returns:
        NotificationDispatcher instance
    """
    global _dispatcher

    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(max_concurrency=settings.NOTIFY_MAX_CONCURRENCY)

    return _dispatcher
