"""Serialized engine mutations and identity-tagged background refinement."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from folderplayer.logging import get_logger

logger = get_logger(__name__)


class SerialTaskQueue:
    """One engine mutation in flight at a time; later callers wait their turn."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.current: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def slot(self, name: str):
        async with self._lock:
            self.current = name
            logger.debug("Task %s started", name)
            try:
                yield
            finally:
                logger.debug("Task %s finished", name)
                self.current = None


@dataclass
class RefinementTask:
    identity: str
    task: "asyncio.Task[Any]"

    def cancel(self) -> None:
        if not self.task.done():
            self.task.cancel()


class RefinementScheduler:
    """
    Runs at most one refinement (lyrics, audio info) per media identity.

    Submitting work for a new identity cancels the previous task. A finished
    result is handed to ``apply`` only if ``is_current(identity)`` is still
    true at that moment; otherwise it is dropped.
    """

    def __init__(self, is_current: Callable[[str], bool]) -> None:
        self.is_current = is_current
        self.active: Optional[RefinementTask] = None
        self.discarded = 0

    def submit(self, identity: str, work: Callable[[], Awaitable[Any]],
               apply: Callable[[Any], None]) -> RefinementTask:
        if self.active is not None:
            self.active.cancel()

        async def run():
            result = await work()
            if not self.is_current(identity):
                self.discarded += 1
                logger.debug("Discarding refinement for superseded %s", identity)
                return None
            apply(result)
            return result

        refinement = RefinementTask(identity, asyncio.create_task(run()))
        refinement.task.add_done_callback(self._log_failure)
        self.active = refinement
        return refinement

    async def wait(self) -> None:
        """Wait for the active task; cancellation and failures are not re-raised."""
        if self.active is not None:
            await asyncio.gather(self.active.task, return_exceptions=True)

    def cancel(self) -> None:
        if self.active is not None:
            self.active.cancel()
            self.active = None

    @staticmethod
    def _log_failure(task: "asyncio.Task[Any]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Refinement task failed: %s", error, exc_info=error)
