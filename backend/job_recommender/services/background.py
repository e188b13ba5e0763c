"""
Detached background work with its own error boundary.

Side effects such as search analytics and profile updates must never delay
or fail the response that triggered them. They run as asyncio tasks whose
exceptions are logged and counted, never re-raised.
"""

import asyncio
import logging
from typing import Awaitable, Set

from job_recommender.middleware.metrics import record_best_effort_failure

logger = logging.getLogger(__name__)


class DetachedTaskRunner:
    """
    Spawns fire-and-forget tasks and keeps them referenced until they finish.

    The event loop only holds weak references to tasks, so an unreferenced
    task can be garbage collected mid-flight.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self.failures = 0

    async def _guard(self, coro: Awaitable, name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            logger.info(f"Background task cancelled: {name}")
            raise
        except Exception as e:
            self.failures += 1
            record_best_effort_failure(name)
            logger.warning(f"Background task {name} failed: {e}")

    def spawn(self, coro: Awaitable, name: str) -> asyncio.Task:
        task = asyncio.create_task(self._guard(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every outstanding task (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
