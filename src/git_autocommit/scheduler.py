import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

CommitCallback = Callable[[Path], Awaitable[Any]]


class CommitScheduler:
    """Sliding-window debounce timer in front of the commit orchestrator.

    Every `schedule` call cancels the pending timer and arms a new one, so a
    burst of changes produces a single attempt `delay_ms` after the *last*
    change. At most one timer is pending at any time. Firings are serialized:
    a timer that expires while a previous attempt is still running waits for
    it to finish. Until it gets the lock it still counts as pending and
    `cancel` drops it; an attempt that has started is never cancelled.

    Attributes:
        callback (CommitCallback): Coroutine run once per firing.
        delay_ms (int): The quiet period.
    """

    def __init__(self, callback: CommitCallback, delay_ms: int):
        self.callback = callback
        self.delay_ms = delay_ms
        self._timer: asyncio.Task[None] | None = None
        self._attempts: set[asyncio.Task[None]] = set()
        self._queued: set[asyncio.Task[None]] = set()
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> bool:
        """True while a timer is armed or a firing is waiting for the lock."""
        armed = self._timer is not None and not self._timer.done()
        return armed or bool(self._queued)

    @property
    def running(self) -> bool:
        """True while an attempt is in flight."""
        return bool(self._attempts)

    @property
    def lock(self) -> asyncio.Lock:
        """Held for the duration of every attempt."""
        return self._lock

    def schedule(self, root: Path) -> None:
        """(Re-)arms the debounce timer for `root`."""
        self.cancel()
        self._timer = asyncio.create_task(self._wait_and_fire(root))

    def cancel(self) -> None:
        """Drops the pending timer and any queued firing without running them."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        for task in self._queued:
            task.cancel()
        self._queued.clear()

    async def _wait_and_fire(self, root: Path) -> None:
        await asyncio.sleep(self.delay_ms / 1000)
        self._timer = None
        task = asyncio.create_task(self._fire(root))
        self._attempts.add(task)
        self._queued.add(task)
        task.add_done_callback(self._attempts.discard)
        task.add_done_callback(self._queued.discard)

    async def _fire(self, root: Path) -> None:
        async with self._lock:
            # Holding the lock, the firing belongs to the attempt.
            self._queued.discard(asyncio.current_task())
            try:
                await self.callback(root)
            except Exception:
                logger.exception(f"SCHEDULER ERROR {root.name}")

    async def wait_idle(self) -> None:
        """Waits for every started attempt to complete."""
        while self._attempts:
            await asyncio.wait(set(self._attempts))
