import datetime
import logging
from pathlib import Path

from . import guard
from .config import Config
from .constants import APP_NAME
from .errors import AutoCommitError, NotARepositoryError
from .models import (
    ChangeEvent,
    Committed,
    CommitOutcome,
    Failed,
    NothingToCommit,
    SessionState,
    SessionStatus,
)
from .notifier import CANCEL, INITIALIZE, Notifier
from .orchestrator import CommitOrchestrator
from .scheduler import CommitScheduler
from .tracker import ChangeTracker
from .watcher import ChangeSource, Subscription

logger = logging.getLogger(APP_NAME)


class AutoCommitSession:
    """Lifecycle of auto-commit for one workspace.

    The session owns the change tracker, the debounce scheduler and the watch
    subscription, and is the only place where they are created or torn down.
    Every state change and every change of the pending count is pushed to the
    notifier's status indicator.

    Attributes:
        config (Config): Configuration in effect.
        notifier (Notifier): Presentation collaborator.
        source (ChangeSource): Where file change events come from.
        state (SessionState): DISABLED or ENABLED.
        root (Path | None): The workspace being watched.
        tracker (ChangeTracker): Pending changed paths.
        scheduler (CommitScheduler): Debounce timer in front of `_attempt`.
        orchestrator (CommitOrchestrator): Runs the commit attempts.
        last_commit (datetime.datetime | None): Time of the last commit.
        commits (int): Commits made this session.
        failures (int): Failed attempts this session.
    """

    def __init__(self, config: Config, notifier: Notifier, source: ChangeSource):
        self.config = config
        self.notifier = notifier
        self.source = source

        self.state = SessionState.DISABLED
        self.root: Path | None = None
        self.tracker = ChangeTracker(Path.cwd(), lambda: self.config.files.exclude)
        self.scheduler = CommitScheduler(self._attempt, config.commit.delay_ms)
        self.orchestrator = CommitOrchestrator(self)
        self._subscription: Subscription | None = None

        self.last_commit: datetime.datetime | None = None
        self.commits = 0
        self.failures = 0

    @property
    def enabled(self) -> bool:
        return self.state is SessionState.ENABLED

    async def enable(self, root: Path) -> bool:
        """Turns auto-commit on for `root`.

        Args:
            root (Path): The workspace root.

        Returns:
            bool: True if the session ended up ENABLED.
        """
        try:
            await guard.ensure_tool_available()
        except AutoCommitError as e:
            logger.error(f"ENABLE FAILED: {e}")
            await self.notifier.error(f"Cannot enable auto-commit: {e}")
            return False

        if not await guard.is_repository(root):
            choice = await self.notifier.choose(
                f"{root.name} is not a git repository. Initialize one?",
                [INITIALIZE, CANCEL],
            )
            if choice != INITIALIZE:
                logger.info(f"ENABLE CANCELLED {root.name}: not a repository.")
                await self.notifier.info("Auto-commit not enabled: no git repository.")
                return False
            try:
                await guard.initialize_repository(root)
            except NotARepositoryError as e:
                await self.notifier.error(f"Repository initialization failed: {e}")
                return False

        root = await guard.repository_root(root)

        if self.config.push.after_commit and not await guard.remote_exists(root):
            await self.notifier.offer_remote_setup(root)

        if self.enabled:
            await self._teardown()

        self.root = root
        self.tracker.root = root
        self.tracker.clear()
        self._subscription = self.source.on_change(root, self.handle_change)
        self.state = SessionState.ENABLED

        logger.info(f"ENABLED {root}")
        await self.notifier.info(f"Auto-commit enabled for {root.name}.")
        self.publish_status()
        return True

    async def disable(self, reason: str | None = None) -> None:
        """Turns auto-commit off; an in-flight attempt is left to finish.

        Args:
            reason (str | None): Shown to the user instead of the plain notice.
        """
        if not self.enabled:
            return

        await self._teardown()
        self.state = SessionState.DISABLED

        logger.info(f"DISABLED {self.root}" + (f": {reason}" if reason else ""))
        if reason:
            await self.notifier.warning(f"Auto-commit disabled: {reason}")
        else:
            await self.notifier.info("Auto-commit disabled.")
        self.publish_status()

    async def _teardown(self) -> None:
        if self._subscription is not None:
            await self._subscription.dispose()
            self._subscription = None
        self.scheduler.cancel()
        self.tracker.clear()

    def handle_change(self, event: ChangeEvent) -> None:
        """Watch callback: records a change and re-arms the debounce timer."""
        if not self.enabled or self.root is None:
            return
        if not self.tracker.record(event.path):
            return
        self.scheduler.schedule(self.root)
        self.publish_status()

    async def _attempt(self, root: Path, force: bool = False) -> CommitOutcome | None:
        if not force and (not self.enabled or root != self.root):
            logger.debug(f"STALE firing for {root.name} dropped.")
            return None
        outcome = await self.orchestrator.run(root, force=force)
        await self._report(outcome, force)
        return outcome

    async def _report(self, outcome: CommitOutcome, force: bool) -> None:
        if isinstance(outcome, Committed):
            if outcome.push_error:
                await self.notifier.warning(
                    f"Committed locally, push failed: {outcome.push_error}"
                )
            elif not outcome.remote_missing and self.config.notify.on_commit:
                where = "committed and pushed" if outcome.pushed else "committed"
                await self.notifier.info(f"Changes {where}.")
        elif isinstance(outcome, NothingToCommit):
            if force:
                await self.notifier.info("Nothing to commit.")
        elif isinstance(outcome, Failed):
            self.failures += 1
            if outcome.fatal:
                # The repository is gone; there is nothing left to watch.
                await self.disable(outcome.reason)
            else:
                await self.notifier.error(
                    f"Auto-commit failed during {outcome.step}: {outcome.reason}"
                )
                self.publish_status()

    async def commit_now(self) -> CommitOutcome | None:
        """Runs a forced attempt immediately, bypassing the debounce.

        Returns:
            CommitOutcome | None: The outcome, or None if the session is disabled.
        """
        if not self.enabled or self.root is None:
            await self.notifier.warning("Auto-commit is not enabled.")
            return None
        self.scheduler.cancel()
        async with self.scheduler.lock:
            return await self._attempt(self.root, force=True)

    def apply_config(self, config: Config) -> None:
        """Swaps in a reloaded configuration; a pending timer keeps its delay."""
        self.config = config
        self.scheduler.delay_ms = config.commit.delay_ms
        logger.info("CONFIG reloaded.")

    def record_commit(self) -> None:
        self.last_commit = datetime.datetime.now()
        self.commits += 1
        self.publish_status()

    def status(self) -> SessionStatus:
        return SessionStatus(
            state=self.state,
            root=self.root,
            pending=self.tracker.count(),
            last_commit=self.last_commit,
            commits=self.commits,
            failures=self.failures,
        )

    def publish_status(self) -> None:
        self.notifier.update_status(self.status())

    async def close(self) -> None:
        """Disables the session and waits for any in-flight attempt."""
        await self.disable()
        await self.scheduler.wait_idle()
