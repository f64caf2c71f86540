"""Exception hierarchy for the commit orchestration engine."""

from pathlib import Path


class AutoCommitError(Exception):
    """Base class for all git-autocommit failures."""


class ToolUnavailableError(AutoCommitError):
    """Raised when the git executable cannot be invoked."""


class NotARepositoryError(AutoCommitError):
    """Raised when the workspace is not (and could not be made) a repository."""

    def __init__(self, root: Path):
        self.root = root
        super().__init__(f"Not a git repository: {root}")


class RepositoryVanishedError(AutoCommitError):
    """Raised when the repository metadata disappears during a session."""

    def __init__(self, root: Path):
        self.root = root
        super().__init__(f"Repository metadata is gone: {root}")


class CommandFailedError(AutoCommitError):
    """Raised when a git command still fails after all retries.

    Attributes:
        args_list (list[str]): The git arguments that were executed.
        attempts (int): How many times the command was run.
        stderr (str): The captured error output of the final attempt.
    """

    def __init__(self, args_list: list[str], attempts: int, stderr: str):
        self.args_list = args_list
        self.attempts = attempts
        self.stderr = stderr
        detail = stderr.strip() or "unknown error"
        super().__init__(
            f"git {' '.join(args_list)} failed after {attempts} attempt(s): {detail}"
        )


class CommandTimeoutError(CommandFailedError):
    """Raised when a single git invocation exceeds the configured timeout."""

    def __init__(self, args_list: list[str], timeout: float):
        self.timeout = timeout
        super().__init__(args_list, 1, f"timed out after {timeout:g}s")


class PushFailedError(AutoCommitError):
    """Raised when the commit succeeded but pushing it did not."""


class ConfigurationError(AutoCommitError, ValueError):
    """Raised when a configuration value is rejected at the input boundary."""
