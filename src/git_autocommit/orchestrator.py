import datetime
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from . import guard
from .constants import (
    APP_NAME,
    DEFAULT_BRANCH,
    DEFAULT_COMMIT_MESSAGE,
    GIT_DIR_NAME,
)
from .errors import (
    AutoCommitError,
    CommandFailedError,
    RepositoryVanishedError,
)
from .executor import CommandExecutor
from .git_wrapper import GitRepo
from .models import Committed, CommitOutcome, Failed, NothingToCommit

if TYPE_CHECKING:
    from .session import AutoCommitSession

logger = logging.getLogger(APP_NAME)


def render_template(template: str, date: str, branch: str, files: str) -> str:
    """Substitutes the {date}, {branch} and {files} placeholders.

    Any other brace expression is left untouched.
    """
    return (
        template.replace("{date}", date)
        .replace("{branch}", branch)
        .replace("{files}", files)
    )


class CommitOrchestrator:
    """Runs one commit attempt for a session.

    Steps: verify the repository, optionally check for changes, build the
    message, stage, commit, optionally push. Each step's failure is caught and
    turned into a `Failed` outcome naming that step; only the loss of the
    repository itself is fatal to the session.

    Attributes:
        session (AutoCommitSession): The owning session (config, tracker,
            notifier, bookkeeping).
    """

    def __init__(self, session: "AutoCommitSession"):
        self.session = session

    def _repo(self, root: Path) -> GitRepo:
        executor = CommandExecutor.from_config(root, self.session.config)
        return GitRepo(root, executor)

    async def run(self, root: Path, force: bool = False) -> CommitOutcome:
        """Executes a single orchestration attempt.

        Args:
            root (Path): The workspace root.
            force (bool): Manual trigger; skips the clean-tree check.

        Returns:
            CommitOutcome: Committed, NothingToCommit or Failed.
        """
        config = self.session.config
        repo = self._repo(root)
        step = "verify"

        try:
            if not (root / GIT_DIR_NAME).exists():
                raise RepositoryVanishedError(root)

            status: list[str] | None = None
            if not force and config.commit.only_with_changes:
                step = "check-changes"
                status = await repo.status_porcelain()
                if not status:
                    return self._nothing_to_commit(root)

            step = "build-message"
            snapshot = self.session.tracker.paths()
            message = await self.build_message(repo, status)

            step = "stage"
            await repo.add_all()

            step = "commit"
            if not await repo.commit(message):
                return self._nothing_to_commit(root)

            self.session.tracker.forget(snapshot)
            self.session.record_commit()
            logger.info(f"COMMITTED {root.name}: {message.splitlines()[0]}")

            if not config.push.after_commit:
                return Committed(pushed=False, message=message)

            step = "push"
            return await self._push(repo, root, message)

        except RepositoryVanishedError as e:
            logger.critical(f"VANISHED {root.name}: {e}")
            reason = str(e)
            if step == "push":
                reason += " (changes were committed before the push)"
            return Failed(reason=reason, step=step, fatal=True)
        except AutoCommitError as e:
            logger.error(f"FAILED {root.name} during {step}: {e}")
            return Failed(reason=str(e), step=step)
        except OSError as e:
            logger.error(f"FAILED {root.name} during {step}: {e}")
            return Failed(reason=str(e), step=step)

    def _nothing_to_commit(self, root: Path) -> NothingToCommit:
        logger.info(f"SKIPPED {root.name}: nothing to commit.")
        self.session.tracker.clear()
        self.session.publish_status()
        return NothingToCommit()

    async def _branch(self, repo: GitRepo) -> str:
        try:
            return await repo.current_branch() or DEFAULT_BRANCH
        except RepositoryVanishedError:
            raise
        except CommandFailedError as e:
            logger.debug(f"Could not resolve branch for {repo.path.name}: {e}")
            return DEFAULT_BRANCH

    async def _file_count(self, repo: GitRepo, status: list[str] | None) -> str:
        if status is not None:
            return str(len(status))
        try:
            return str(len(await repo.status_porcelain()))
        except RepositoryVanishedError:
            raise
        except CommandFailedError as e:
            logger.debug(f"Could not count changes for {repo.path.name}: {e}")
            return "0"

    async def build_message(self, repo: GitRepo, status: list[str] | None = None) -> str:
        """Renders the commit message for the current attempt.

        Args:
            repo (GitRepo): The repository being committed.
            status (list[str] | None): Porcelain status already fetched during
                this attempt, reused for the {files} count.

        Returns:
            str: The message, never blank.
        """
        commit_config = self.session.config.commit
        message = render_template(
            commit_config.message_template,
            date=datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            branch=await self._branch(repo),
            files=await self._file_count(repo, status),
        )

        if commit_config.detailed_message:
            lines = self.session.tracker.summary(commit_config.max_files_to_list).lines()
            if lines:
                message = message.rstrip() + "\n\n" + "\n".join(lines)

        if not message.strip():
            return DEFAULT_COMMIT_MESSAGE
        return message

    async def _push(self, repo: GitRepo, root: Path, message: str) -> Committed:
        remote = self.session.config.git.remote_name

        if not await guard.remote_exists(root):
            logger.info(f"LOCAL ONLY {root.name}: no remote configured.")
            await self.session.notifier.offer_remote_setup(root)
            return Committed(pushed=False, message=message, remote_missing=True)

        if self.session.config.push.confirm:
            if not await self.session.notifier.confirm(f"Push {root.name} to {remote}?"):
                logger.info(f"HELD {root.name}: push declined.")
                return Committed(pushed=False, message=message)

        try:
            branch = await repo.current_branch() or "HEAD"
            await repo.push(remote, branch)
        except RepositoryVanishedError:
            raise
        except AutoCommitError as e:
            logger.error(f"PUSH ERROR {root.name}: {e}")
            return Committed(pushed=False, message=message, push_error=str(e))

        logger.info(f"SUCCESS {root.name}: Pushed.")
        return Committed(pushed=True, message=message)
