"""Tests for tool and repository checks and repository bootstrapping."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_autocommit import guard
from git_autocommit.constants import BOT_EMAIL, DEFAULT_IGNORES
from git_autocommit.errors import (
    CommandFailedError,
    NotARepositoryError,
    ToolUnavailableError,
)


@pytest.mark.asyncio
async def test_tool_missing_from_path(mocker: MagicMock) -> None:
    """Verifies a missing git executable is reported without running anything."""
    mocker.patch("git_autocommit.guard.shutil.which", return_value=None)
    run = mocker.patch("git_autocommit.guard.run_git")

    with pytest.raises(ToolUnavailableError):
        await guard.ensure_tool_available()
    run.assert_not_awaited()


@pytest.mark.asyncio
async def test_tool_unusable(mocker: MagicMock) -> None:
    """Verifies a git that cannot report its version counts as unavailable."""
    mocker.patch("git_autocommit.guard.shutil.which", return_value="/usr/bin/git")
    mocker.patch(
        "git_autocommit.guard.run_git",
        side_effect=CommandFailedError(["--version"], 1, "broken"),
    )

    with pytest.raises(ToolUnavailableError):
        await guard.ensure_tool_available()


@pytest.mark.asyncio
async def test_is_repository_uses_metadata_dir(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies the .git directory short-circuits the git probe."""
    (tmp_path / ".git").mkdir()
    run = mocker.patch("git_autocommit.guard.run_git")

    assert await guard.is_repository(tmp_path) is True
    run.assert_not_awaited()


@pytest.mark.asyncio
async def test_is_repository_falls_back_to_git(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies nested working trees are detected through rev-parse."""
    mocker.patch("git_autocommit.guard.run_git", return_value="true")
    assert await guard.is_repository(tmp_path) is True

    mocker.patch(
        "git_autocommit.guard.run_git",
        side_effect=CommandFailedError(["rev-parse"], 1, "not a git repository"),
    )
    assert await guard.is_repository(tmp_path) is False


@pytest.mark.asyncio
async def test_repository_root_resolves_top_level(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies a subdirectory resolves to the enclosing working tree."""
    nested = tmp_path / "pkg"
    nested.mkdir()
    mocker.patch("git_autocommit.guard.run_git", return_value=str(tmp_path))

    assert await guard.repository_root(nested) == tmp_path


def test_write_default_gitignore_creates_file(tmp_path: Path) -> None:
    """Verifies a fresh .gitignore holds every default pattern."""
    guard.write_default_gitignore(tmp_path)

    content = (tmp_path / ".gitignore").read_text()
    for pattern in DEFAULT_IGNORES:
        assert pattern in content


def test_write_default_gitignore_appends_missing(tmp_path: Path) -> None:
    """Verifies existing rules are kept and only missing defaults are added."""
    gitignore = tmp_path / ".gitignore"
    gitignore.write_text("dist/\n*.swp")

    guard.write_default_gitignore(tmp_path)

    lines = gitignore.read_text().splitlines()
    assert lines[0] == "dist/"
    assert lines.count("*.swp") == 1
    assert "__pycache__/" in lines


@pytest.mark.asyncio
async def test_initialize_repository(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies init, .gitignore, staging and the bot-authored initial commit."""

    async def fake_git(args: list[str], cwd: Path, timeout: float | None = None) -> str:
        if args == ["init"]:
            (cwd / ".git").mkdir()
        return ""

    run = mocker.patch("git_autocommit.guard.run_git", side_effect=fake_git)

    await guard.initialize_repository(tmp_path)

    assert (tmp_path / ".gitignore").exists()
    commands = [c.args[0] for c in run.await_args_list]
    assert commands[0] == ["init"]
    assert commands[1] == ["add", "-A"]
    assert f"user.email={BOT_EMAIL}" in commands[2]
    assert commands[2][-3:] == ["commit", "-m", "Initial commit"]


@pytest.mark.asyncio
async def test_initialize_repository_keeps_repo_when_commit_fails(
    tmp_path: Path, mocker: MagicMock, caplog: MagicMock
) -> None:
    """Verifies a failed initial commit does not undo initialization."""

    async def fake_git(args: list[str], cwd: Path, timeout: float | None = None) -> str:
        if args == ["init"]:
            (cwd / ".git").mkdir()
        elif "commit" in args:
            raise CommandFailedError(args, 1, "nothing added")
        return ""

    mocker.patch("git_autocommit.guard.run_git", side_effect=fake_git)

    await guard.initialize_repository(tmp_path)

    assert (tmp_path / ".git").exists()
    assert "Initial commit failed" in caplog.text


@pytest.mark.asyncio
async def test_initialize_repository_failure(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies a failing git init raises NotARepositoryError."""
    mocker.patch(
        "git_autocommit.guard.run_git",
        side_effect=CommandFailedError(["init"], 1, "permission denied"),
    )

    with pytest.raises(NotARepositoryError):
        await guard.initialize_repository(tmp_path)


@pytest.mark.asyncio
async def test_remote_exists(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies remote detection, treating probe errors as 'no remote'."""
    mocker.patch("git_autocommit.guard.run_git", return_value="origin")
    assert await guard.remote_exists(tmp_path) is True

    mocker.patch("git_autocommit.guard.run_git", return_value="")
    assert await guard.remote_exists(tmp_path) is False

    mocker.patch(
        "git_autocommit.guard.run_git",
        side_effect=CommandFailedError(["remote"], 1, "fatal"),
    )
    assert await guard.remote_exists(tmp_path) is False
