"""Named, cancelable deferred tasks.

Used for the delayed cancellation of challenges closed without payment and
for re-delivering rescheduled events. Tasks outlive the event that scheduled
them; the scheduler owns their handles.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Runs coroutines after a delay, keyed by name."""

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(
        self,
        name: str,
        delay: float,
        factory: Callable[[], Awaitable],
    ) -> asyncio.Task:
        """Run ``factory()`` after ``delay`` seconds.

        Scheduling a name that is already pending replaces the earlier task.
        Must be called from a running event loop.
        """
        self.cancel(name)
        task = asyncio.get_running_loop().create_task(
            self._run(name, delay, factory), name=name
        )
        self._tasks[name] = task
        task.add_done_callback(lambda t: self._finished(name, t))
        logger.debug(f"Scheduled task {name} in {delay}s")
        return task

    async def _run(self, name: str, delay: float, factory) -> None:
        await asyncio.sleep(delay)
        logger.debug(f"Running scheduled task {name}")
        await factory()

    def _finished(self, name: str, task: asyncio.Task) -> None:
        if self._tasks.get(name) is task:
            del self._tasks[name]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Scheduled task {name} failed: {error}",
                exc_info=(type(error), error, error.__traceback__),
            )

    def cancel(self, name: str) -> bool:
        """Cancel a pending task; returns False when nothing was pending."""
        task = self._tasks.pop(name, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"Cancelled scheduled task {name}")
        return True

    def pending(self) -> List[str]:
        return [name for name, task in self._tasks.items() if not task.done()]

    async def shutdown(self) -> None:
        """Cancel everything still pending and wait for it to unwind."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
