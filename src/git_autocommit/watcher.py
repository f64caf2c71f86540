"""Filesystem subscriptions feeding an auto-commit session.

A `ChangeSource` hands out `Subscription` handles: one for workspace file
changes, one for configuration file edits. Callbacks run on the event loop
that created the subscription, so they never race with commit attempts.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from watchfiles import Change, awatch

from .constants import APP_NAME
from .models import ChangeEvent, ChangeKind

logger = logging.getLogger(APP_NAME)

ChangeCallback = Callable[[ChangeEvent], None]
ConfigCallback = Callable[[], None]

_KINDS = {
    Change.added: ChangeKind.CREATED,
    Change.modified: ChangeKind.CHANGED,
    Change.deleted: ChangeKind.DELETED,
}


class Subscription:
    """Disposable handle for one running watch."""

    def __init__(self, task: asyncio.Task[None], stop_event: asyncio.Event):
        self._task = task
        self._stop_event = stop_event

    @property
    def active(self) -> bool:
        return not self._task.done()

    async def dispose(self) -> None:
        """Stops the watch and waits for its task to end."""
        self._stop_event.set()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class ChangeSource:
    """Interface for anything that can report workspace and config changes."""

    def on_change(self, root: Path, callback: ChangeCallback) -> Subscription:
        raise NotImplementedError

    def on_config_change(
        self, paths: Iterable[Path], callback: ConfigCallback
    ) -> Subscription:
        raise NotImplementedError


class WatchfilesSource(ChangeSource):
    """`ChangeSource` backed by watchfiles.

    Attributes:
        debounce (int): watchfiles' own batching window in milliseconds. This
            only groups raw events; the commit debounce is the scheduler's.
    """

    def __init__(self, debounce: int = 100):
        self.debounce = debounce

    def on_change(self, root: Path, callback: ChangeCallback) -> Subscription:
        stop_event = asyncio.Event()
        task = asyncio.create_task(self._watch_tree(root, callback, stop_event))
        return Subscription(task, stop_event)

    def on_config_change(
        self, paths: Iterable[Path], callback: ConfigCallback
    ) -> Subscription:
        stop_event = asyncio.Event()
        task = asyncio.create_task(self._watch_files(list(paths), callback, stop_event))
        return Subscription(task, stop_event)

    async def _watch_tree(
        self, root: Path, callback: ChangeCallback, stop_event: asyncio.Event
    ) -> None:
        # Exclusions are applied by the session; watchfiles' default filter
        # would silently hide paths the user may want committed.
        async for changes in awatch(
            root,
            watch_filter=None,
            debounce=self.debounce,
            stop_event=stop_event,
        ):
            for change, raw_path in sorted(changes, key=lambda c: c[1]):
                try:
                    callback(ChangeEvent(Path(raw_path), _KINDS[change]))
                except Exception:
                    # A bad event must not kill the watch.
                    logger.exception(f"WATCH ERROR {raw_path}")

    async def _watch_files(
        self, paths: list[Path], callback: ConfigCallback, stop_event: asyncio.Event
    ) -> None:
        targets = {p.resolve() for p in paths}
        directories = sorted({str(p.parent) for p in targets if p.parent.exists()})
        if not directories:
            return

        async for changes in awatch(
            *directories,
            recursive=False,
            debounce=self.debounce,
            stop_event=stop_event,
        ):
            if any(Path(raw).resolve() in targets for _, raw in changes):
                try:
                    callback()
                except Exception:
                    logger.exception("CONFIG RELOAD ERROR")
