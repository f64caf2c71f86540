"""Tests for the retrying git command executor."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from git_autocommit.config import Config
from git_autocommit.constants import NOTHING_TO_COMMIT
from git_autocommit.errors import (
    CommandFailedError,
    CommandTimeoutError,
    RepositoryVanishedError,
    ToolUnavailableError,
)
from git_autocommit.executor import CommandExecutor, git_env, is_nothing_to_commit, run_git


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    """A directory that looks like a repository root."""
    (tmp_path / ".git").mkdir()
    return tmp_path


def _failure(stderr: str = "fatal: unable to access remote") -> CommandFailedError:
    return CommandFailedError(["push"], 1, stderr)


@pytest.mark.asyncio
async def test_execute_returns_stdout_on_success(repo_root: Path, mocker: MagicMock) -> None:
    """Verifies that a successful command runs exactly once."""
    run = mocker.patch("git_autocommit.executor.run_git", return_value="main")
    executor = CommandExecutor(repo_root, max_retries=3, retry_delay_ms=0)

    assert await executor.execute(["branch", "--show-current"]) == "main"
    run.assert_awaited_once_with(["branch", "--show-current"], repo_root, 120.0)


@pytest.mark.asyncio
@pytest.mark.parametrize("max_retries", [0, 1, 3])
async def test_execute_retries_then_raises(
    repo_root: Path, mocker: MagicMock, max_retries: int
) -> None:
    """Verifies a persistent failure runs max_retries + 1 times, then raises.

    Args:
        repo_root (Path): Fake repository root.
        mocker (MagicMock): Pytest fixture for mocking.
        max_retries (int): Configured retry budget.
    """
    run = mocker.patch("git_autocommit.executor.run_git", side_effect=_failure())
    executor = CommandExecutor(repo_root, max_retries=max_retries, retry_delay_ms=0)

    with pytest.raises(CommandFailedError) as excinfo:
        await executor.execute(["push", "-u", "origin", "main"])

    assert run.await_count == max_retries + 1
    assert excinfo.value.attempts == max_retries + 1
    assert "unable to access remote" in excinfo.value.stderr


@pytest.mark.asyncio
async def test_execute_recovers_from_transient_failure(
    repo_root: Path, mocker: MagicMock, caplog: MagicMock
) -> None:
    """Verifies that a later success ends the retry loop and logs the retry."""
    run = mocker.patch(
        "git_autocommit.executor.run_git", side_effect=[_failure(), _failure(), "ok"]
    )
    executor = CommandExecutor(repo_root, max_retries=3, retry_delay_ms=0)

    assert await executor.execute(["push"]) == "ok"
    assert run.await_count == 3
    assert "RETRY" in caplog.text


@pytest.mark.asyncio
async def test_execute_waits_between_attempts(repo_root: Path, mocker: MagicMock) -> None:
    """Verifies the fixed delay between attempts, and none after the last."""
    mocker.patch("git_autocommit.executor.run_git", side_effect=_failure())
    sleep = mocker.patch("git_autocommit.executor.asyncio.sleep", new_callable=AsyncMock)
    executor = CommandExecutor(repo_root, max_retries=2, retry_delay_ms=1500)

    with pytest.raises(CommandFailedError):
        await executor.execute(["push"])

    assert sleep.await_args_list == [mocker.call(1.5), mocker.call(1.5)]


@pytest.mark.asyncio
async def test_nothing_to_commit_becomes_sentinel(repo_root: Path, mocker: MagicMock) -> None:
    """Verifies git's clean-tree report is an outcome, not an error."""
    run = mocker.patch(
        "git_autocommit.executor.run_git",
        side_effect=_failure("On branch main\nnothing to commit, working tree clean"),
    )
    executor = CommandExecutor(repo_root, max_retries=1, retry_delay_ms=0)

    assert await executor.execute(["commit", "-m", "msg"]) == NOTHING_TO_COMMIT
    assert run.await_count == 2


@pytest.mark.asyncio
async def test_vanished_repository_short_circuits(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies a missing .git directory fails before git is ever invoked."""
    run = mocker.patch("git_autocommit.executor.run_git")
    executor = CommandExecutor(tmp_path, max_retries=3, retry_delay_ms=0)

    with pytest.raises(RepositoryVanishedError):
        await executor.execute(["status", "--porcelain"])

    run.assert_not_awaited()


@pytest.mark.asyncio
async def test_repository_vanishing_between_attempts(repo_root: Path, mocker: MagicMock) -> None:
    """Verifies the precondition is re-checked before every retry."""

    def fail_and_remove(*_args: object) -> None:
        (repo_root / ".git").rmdir()
        raise _failure()

    run = mocker.patch("git_autocommit.executor.run_git", side_effect=fail_and_remove)
    executor = CommandExecutor(repo_root, max_retries=3, retry_delay_ms=0)

    with pytest.raises(RepositoryVanishedError):
        await executor.execute(["add", "-A"])

    assert run.await_count == 1


def test_from_config_uses_retry_and_timeout_settings(repo_root: Path) -> None:
    """Verifies the executor picks up the retry policy and command timeout."""
    conf = Config()
    conf.retry.max_retries = 5
    conf.retry.delay_ms = 250
    conf.git.command_timeout = 30.0

    executor = CommandExecutor.from_config(repo_root, conf)

    assert (executor.max_retries, executor.retry_delay_ms, executor.timeout) == (5, 250, 30.0)


def test_is_nothing_to_commit() -> None:
    """Verifies the clean-tree markers are recognized case-insensitively."""
    assert is_nothing_to_commit("Nothing to commit, working tree clean")
    assert is_nothing_to_commit("no changes added to commit (use \"git add\")")
    assert not is_nothing_to_commit("fatal: not a git repository")


def test_git_env_disables_prompts() -> None:
    """Verifies git is never allowed to block on a credential prompt."""
    env = git_env()
    assert env["GIT_TERMINAL_PROMPT"] == "0"
    assert "GIT_SSH_COMMAND" in env


@pytest.mark.asyncio
async def test_run_git_missing_binary(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies a missing git executable maps to ToolUnavailableError."""
    mocker.patch(
        "git_autocommit.executor.asyncio.create_subprocess_exec",
        side_effect=FileNotFoundError("git"),
    )

    with pytest.raises(ToolUnavailableError):
        await run_git(["status"], tmp_path)


@pytest.mark.asyncio
async def test_run_git_nonzero_exit(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies a failing exit status raises with stderr and stdout attached."""
    proc = MagicMock()
    proc.returncode = 1
    proc.communicate = AsyncMock(return_value=(b"stdout text", b"fatal: boom"))
    mocker.patch(
        "git_autocommit.executor.asyncio.create_subprocess_exec",
        new_callable=AsyncMock,
        return_value=proc,
    )

    with pytest.raises(CommandFailedError) as excinfo:
        await run_git(["commit", "-m", "it's \"quoted\""], tmp_path)

    assert "fatal: boom" in excinfo.value.stderr
    assert "stdout text" in excinfo.value.stderr


@pytest.mark.asyncio
async def test_run_git_passes_message_as_single_argument(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies messages with quotes reach git untouched as one argv element."""
    proc = MagicMock()
    proc.returncode = 0
    proc.communicate = AsyncMock(return_value=(b"[main abc123] done\n", b""))
    spawn = mocker.patch(
        "git_autocommit.executor.asyncio.create_subprocess_exec",
        new_callable=AsyncMock,
        return_value=proc,
    )
    message = 'Fix "quotes" and \'apostrophes\'; rm -rf /'

    assert await run_git(["commit", "-m", message], tmp_path) == "[main abc123] done"
    args = spawn.await_args.args
    assert args == ("git", "commit", "-m", message)


@pytest.mark.asyncio
async def test_run_git_timeout_kills_process(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies a hung process is killed and reported as a timeout."""

    async def hang() -> tuple[bytes, bytes]:
        await asyncio.Event().wait()
        return b"", b""

    proc = MagicMock()
    proc.communicate = hang
    proc.wait = AsyncMock(return_value=-9)
    mocker.patch(
        "git_autocommit.executor.asyncio.create_subprocess_exec",
        new_callable=AsyncMock,
        return_value=proc,
    )

    with pytest.raises(CommandTimeoutError):
        await run_git(["fetch"], tmp_path, timeout=0.01)

    proc.kill.assert_called_once()
