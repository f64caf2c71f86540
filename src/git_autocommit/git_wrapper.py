import logging
from pathlib import Path

from .constants import APP_NAME, NOTHING_TO_COMMIT
from .errors import CommandFailedError, PushFailedError
from .executor import CommandExecutor

logger = logging.getLogger(APP_NAME)


class GitRepo:
    """The git verbs used by the commit orchestrator, for one workspace.

    Every call goes through a `CommandExecutor`, so each one is retried and
    re-checks that the repository still exists before running.

    Attributes:
        path (Path): The file system path to the repository root.
        executor (CommandExecutor): The retrying command runner.
    """

    def __init__(self, path: Path, executor: CommandExecutor):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.
            executor (CommandExecutor): Runner bound to the same root.
        """
        self.path = path
        self.executor = executor

    async def _run(self, args: list[str]) -> str:
        return await self.executor.execute(args)

    async def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The branch name, or an empty string on a detached HEAD.
        """
        return await self._run(["branch", "--show-current"])

    async def status_porcelain(self) -> list[str]:
        """Returns the porcelain (machine-readable) status of the working tree.

        Returns:
            list[str]: One line per changed path; empty when the tree is clean.
        """
        output = await self._run(["status", "--porcelain"])
        return output.splitlines() if output else []

    async def add_all(self) -> None:
        """Stages all changes (modified, deleted, and untracked files)."""
        await self._run(["add", "-A"])

    async def commit(self, message: str) -> bool:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.

        Returns:
            bool: False if git reported there was nothing to commit.
        """
        output = await self._run(["commit", "-m", message])
        return output != NOTHING_TO_COMMIT

    async def remotes(self) -> list[str]:
        """Lists the configured remote names."""
        output = await self._run(["remote"])
        return output.splitlines() if output else []

    async def push(self, remote: str, branch: str) -> None:
        """Pushes a branch and sets it as the upstream.

        Args:
            remote (str): The remote name.
            branch (str): The local branch to push.

        Raises:
            PushFailedError: If every push attempt failed.
        """
        try:
            await self._run(["push", "-u", remote, branch])
        except CommandFailedError as e:
            raise PushFailedError(f"push to {remote}/{branch} failed: {e.stderr or e}") from e
