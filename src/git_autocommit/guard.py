import logging
import shutil
from pathlib import Path

from .constants import (
    APP_NAME,
    BOT_EMAIL,
    BOT_NAME,
    DEFAULT_IGNORES,
    GIT_DIR_NAME,
)
from .errors import (
    AutoCommitError,
    CommandFailedError,
    NotARepositoryError,
    ToolUnavailableError,
)
from .executor import run_git

logger = logging.getLogger(APP_NAME)

# Probes are quick, local commands; they never need the full command timeout.
PROBE_TIMEOUT = 10.0


async def ensure_tool_available() -> str:
    """Verifies that git can be invoked.

    A missing tool will not appear mid-session, so this is never retried.

    Returns:
        str: The `git --version` banner.

    Raises:
        ToolUnavailableError: If git is missing or cannot run.
    """
    if not shutil.which("git"):
        raise ToolUnavailableError("git executable not found on PATH")
    try:
        return await run_git(["--version"], Path.cwd(), PROBE_TIMEOUT)
    except CommandFailedError as e:
        raise ToolUnavailableError(f"git is not usable: {e}") from e


async def is_repository(root: Path) -> bool:
    """Checks whether `root` is inside a git working tree.

    The metadata directory is checked first; if it is absent git itself is
    asked, which also covers worktrees and nested checkouts.

    Args:
        root (Path): The workspace root.

    Returns:
        bool: True if git considers `root` a working tree.
    """
    if (root / GIT_DIR_NAME).exists():
        return True
    try:
        output = await run_git(["rev-parse", "--is-inside-work-tree"], root, PROBE_TIMEOUT)
    except (AutoCommitError, OSError) as e:
        logger.debug(f"Repository probe failed for {root}: {e}")
        return False
    return output.strip() == "true"


async def repository_root(root: Path) -> Path:
    """Resolves the top-level directory of the working tree containing `root`.

    Falls back to `root` itself when git cannot answer.
    """
    if (root / GIT_DIR_NAME).exists():
        return root
    try:
        output = await run_git(["rev-parse", "--show-toplevel"], root, PROBE_TIMEOUT)
    except (AutoCommitError, OSError) as e:
        logger.debug(f"Top-level probe failed for {root}: {e}")
        return root
    return Path(output.strip()) if output.strip() else root


def write_default_gitignore(root: Path) -> None:
    """Ensures a .gitignore exists and contains the default patterns."""
    gitignore = root / ".gitignore"

    if not gitignore.exists():
        logger.info(f"Creating basic .gitignore in {root.name}.")
        with open(gitignore, "w") as f:
            f.write("\n".join(DEFAULT_IGNORES) + "\n")
        return

    with open(gitignore) as f:
        existing_content = f.read()

    missing_defaults = [d for d in DEFAULT_IGNORES if d not in existing_content]
    if missing_defaults:
        logger.info(f"Appending {len(missing_defaults)} missing ignores.")
        with open(gitignore, "a") as f:
            prefix = "\n" if existing_content and not existing_content.endswith("\n") else ""
            f.write(prefix + "\n".join(missing_defaults) + "\n")


async def initialize_repository(root: Path) -> None:
    """Creates a repository with a default .gitignore and an initial commit.

    The initial commit uses a fixed bot identity so it works on machines
    without a configured git user. If that commit fails, the repository is
    kept: initialization counts as successful as long as the metadata
    directory exists afterwards.

    Args:
        root (Path): The workspace root.

    Raises:
        NotARepositoryError: If no repository exists after `git init`.
    """
    try:
        await run_git(["init"], root, PROBE_TIMEOUT)
    except (CommandFailedError, ToolUnavailableError) as e:
        logger.error(f"INIT ERROR {root.name}: {e}")
        raise NotARepositoryError(root) from e

    try:
        write_default_gitignore(root)
    except OSError as e:
        logger.warning(f"Could not write .gitignore in {root.name}: {e}")

    try:
        await run_git(["add", "-A"], root, PROBE_TIMEOUT)
        await run_git(
            [
                "-c",
                f"user.name={BOT_NAME}",
                "-c",
                f"user.email={BOT_EMAIL}",
                "commit",
                "-m",
                "Initial commit",
            ],
            root,
            PROBE_TIMEOUT,
        )
    except CommandFailedError as e:
        logger.warning(f"Initial commit failed in {root.name}: {e}")

    if not (root / GIT_DIR_NAME).exists():
        raise NotARepositoryError(root)
    logger.info(f"INIT {root.name}: repository created.")


async def add_remote(root: Path, name: str, url: str) -> None:
    """Configures a new remote.

    Raises:
        CommandFailedError: If git rejects the remote.
    """
    await run_git(["remote", "add", name, url], root, PROBE_TIMEOUT)
    logger.info(f"REMOTE {root.name}: added '{name}' -> {url}")


async def remote_exists(root: Path) -> bool:
    """Reports whether at least one remote is configured.

    Any execution error counts as "no remote".
    """
    try:
        output = await run_git(["remote"], root, PROBE_TIMEOUT)
    except (AutoCommitError, OSError) as e:
        logger.debug(f"Remote probe failed for {root}: {e}")
        return False
    return bool(output.strip())
