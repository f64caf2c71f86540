import asyncio
import logging
import os
from pathlib import Path

from .config import Config
from .constants import (
    APP_NAME,
    GIT_DIR_NAME,
    MAX_OUTPUT_BYTES,
    NOTHING_TO_COMMIT,
    NOTHING_TO_COMMIT_MARKERS,
)
from .errors import (
    CommandFailedError,
    CommandTimeoutError,
    RepositoryVanishedError,
    ToolUnavailableError,
)

logger = logging.getLogger(APP_NAME)


def _decode(raw: bytes | None) -> str:
    if not raw:
        return ""
    if len(raw) > MAX_OUTPUT_BYTES:
        raw = raw[:MAX_OUTPUT_BYTES]
    return raw.decode("utf-8", errors="replace")


def git_env() -> dict[str, str]:
    """Environment for non-interactive git: never block on a credential prompt."""
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
    return env


async def run_git(args: list[str], cwd: Path, timeout: float | None = None) -> str:
    """Runs a single git command and returns its stripped stdout.

    Args:
        args (list[str]): Arguments passed to `git`.
        cwd (Path): Working directory for the process.
        timeout (float | None): Seconds before the process is killed.

    Returns:
        str: The stripped standard output.

    Raises:
        ToolUnavailableError: If the git executable cannot be started.
        CommandTimeoutError: If the process outlives `timeout`.
        CommandFailedError: If git exits with a non-zero status. The error
            carries stderr followed by stdout, since some git verbs (commit)
            report their reason on stdout.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=git_env(),
        )
    except FileNotFoundError as e:
        raise ToolUnavailableError("git executable not found on PATH") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise CommandTimeoutError(args, timeout or 0) from None

    out, err = _decode(stdout), _decode(stderr)
    if out:
        logger.debug(f"git {' '.join(args)} stdout: {out.strip()}")
    if err:
        logger.debug(f"git {' '.join(args)} stderr: {err.strip()}")

    if proc.returncode != 0:
        detail = "\n".join(part.strip() for part in (err, out) if part.strip())
        raise CommandFailedError(args, 1, detail)
    return out.strip()


def is_nothing_to_commit(text: str) -> bool:
    """Detects git's 'clean tree' report in its human-readable output."""
    lowered = text.lower()
    return any(marker in lowered for marker in NOTHING_TO_COMMIT_MARKERS)


class CommandExecutor:
    """Runs git commands for one workspace with bounded, fixed-delay retries.

    Attributes:
        root (Path): The repository root every command runs in.
        max_retries (int): Extra attempts after the first failure.
        retry_delay_ms (int): Wait between attempts.
        timeout (float | None): Per-invocation timeout in seconds.
    """

    def __init__(
        self,
        root: Path,
        max_retries: int = 3,
        retry_delay_ms: int = 2000,
        timeout: float | None = 120.0,
    ):
        self.root = root
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self.timeout = timeout

    @classmethod
    def from_config(cls, root: Path, config: Config) -> "CommandExecutor":
        return cls(
            root,
            max_retries=config.retry.max_retries,
            retry_delay_ms=config.retry.delay_ms,
            timeout=config.git.command_timeout,
        )

    def _ensure_repository(self) -> None:
        if not (self.root / GIT_DIR_NAME).exists():
            raise RepositoryVanishedError(self.root)

    async def execute(self, args: list[str]) -> str:
        """Executes a git command, retrying transient failures.

        The repository metadata directory is re-checked before every attempt;
        losing it is not a transient fault and fails immediately. Once retries
        are exhausted, a final failure reporting a clean tree is turned into
        the NOTHING_TO_COMMIT sentinel instead of an error.

        Args:
            args (list[str]): Arguments passed to `git`.

        Returns:
            str: The command's stdout, or NOTHING_TO_COMMIT.

        Raises:
            RepositoryVanishedError: If the repository disappeared.
            ToolUnavailableError: If git cannot be started at all.
            CommandFailedError: If every attempt failed.
        """
        attempts = self.max_retries + 1
        attempt = 1

        while True:
            self._ensure_repository()
            try:
                return await run_git(args, self.root, self.timeout)
            except CommandFailedError as e:
                if attempt >= attempts:
                    if is_nothing_to_commit(e.stderr):
                        logger.info(f"CLEAN {self.root.name}: {NOTHING_TO_COMMIT}.")
                        return NOTHING_TO_COMMIT
                    raise CommandFailedError(args, attempts, e.stderr) from e
                logger.warning(
                    f"RETRY {self.root.name}: git {args[0]} failed "
                    f"(attempt {attempt}/{attempts}): {e.stderr or e}"
                )
            await asyncio.sleep(self.retry_delay_ms / 1000)
            attempt += 1
