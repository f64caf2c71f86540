import asyncio
import contextlib
import json
import logging
import os
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm, Prompt

from . import guard, system
from .constants import APP_NAME, CONFIG_FILE, STATUS_FILE
from .errors import AutoCommitError
from .models import SessionState, SessionStatus

logger = logging.getLogger(APP_NAME)

CONFIGURE_REMOTE = "Configure Remote"
INITIALIZE = "Initialize"
CANCEL = "Cancel"


class Notifier:
    """Presentation collaborator of an auto-commit session.

    The base implementation is silent and declines every prompt, which is the
    safe behavior for unattended use. Message methods return the action the
    user picked, if any.
    """

    async def info(self, message: str, *actions: str) -> str | None:
        return None

    async def warning(self, message: str, *actions: str) -> str | None:
        return None

    async def error(self, message: str, *actions: str) -> str | None:
        return None

    async def confirm(self, prompt: str) -> bool:
        """Asks a yes/no question; the default answer is no."""
        return False

    async def choose(self, prompt: str, options: Sequence[str]) -> str | None:
        """Asks the user to pick one option; None means cancelled."""
        return None

    def update_status(self, status: SessionStatus) -> None:
        """Refreshes the persistent status indicator."""
        pass

    async def offer_remote_setup(self, root: Path) -> None:
        """Tells the user no remote exists and offers to configure one."""
        await self.info(
            f"{root.name} has no git remote; commits stay local.", CONFIGURE_REMOTE
        )

    async def open_config(self) -> None:
        """Opens the configuration editor."""
        pass


def write_status(status: SessionStatus, status_file: Path = STATUS_FILE) -> None:
    """Persists the status snapshot to disk atomically.

    Args:
        status (SessionStatus): The snapshot to publish.
        status_file (Path): Destination file.
    """
    tmp_file = status_file.with_suffix(".tmp")
    try:
        status_file.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_file, "w") as f:
            json.dump(status.to_dict(), f)
            f.flush()
            os.fsync(f.fileno())

        # Atomic pointer swap at the filesystem level
        os.replace(tmp_file, status_file)
    except OSError as e:
        logger.debug(f"Failed to write status file: {e}")
        if tmp_file.exists():
            with contextlib.suppress(OSError):
                tmp_file.unlink()


def read_status(status_file: Path = STATUS_FILE) -> dict | None:
    """Reads the last published status snapshot, if any."""
    if not status_file.exists():
        return None
    try:
        return json.loads(status_file.read_text())
    except (OSError, ValueError) as e:
        logger.debug(f"Failed to read status file: {e}")
        return None


class ConsoleNotifier(Notifier):
    """Terminal front-end built on rich, with optional desktop notifications.

    Attributes:
        console (Console): Output console.
        interactive (bool): Whether prompts may be shown. When False every
            prompt is declined.
        desktop (bool): Mirror messages as desktop notifications.
        status_file (Path | None): Where status snapshots are published.
        remote_name (str): Name given to a remote configured from a prompt.
    """

    def __init__(
        self,
        console: Console | None = None,
        interactive: bool = True,
        desktop: bool = False,
        status_file: Path | None = STATUS_FILE,
        remote_name: str = "origin",
    ):
        self.console = console or Console()
        self.interactive = interactive
        self.desktop = desktop
        self.status_file = status_file
        self.remote_name = remote_name
        self._system = system.get_system()

    def _emit(self, label: str, style: str, message: str) -> None:
        self.console.print(f"[{style}]{label}:[/{style}] {message}")
        if self.desktop:
            self._system.notify(APP_NAME, message)

    async def _pick(self, actions: Sequence[str]) -> str | None:
        if not actions or not self.interactive:
            return None
        return await self.choose("   Action", [*actions, CANCEL])

    async def info(self, message: str, *actions: str) -> str | None:
        self._emit("INFO", "bold blue", message)
        return await self._pick(actions)

    async def warning(self, message: str, *actions: str) -> str | None:
        self._emit("WARNING", "bold yellow", message)
        return await self._pick(actions)

    async def error(self, message: str, *actions: str) -> str | None:
        self._emit("ERROR", "bold red", message)
        return await self._pick(actions)

    async def confirm(self, prompt: str) -> bool:
        if not self.interactive:
            return False
        return await asyncio.to_thread(
            Confirm.ask, prompt, console=self.console, default=False
        )

    async def choose(self, prompt: str, options: Sequence[str]) -> str | None:
        if not self.interactive or not options:
            return None
        choice = await asyncio.to_thread(
            Prompt.ask,
            prompt,
            console=self.console,
            choices=list(options),
            default=options[-1],
        )
        return None if choice == CANCEL else choice

    def update_status(self, status: SessionStatus) -> None:
        if status.state is SessionState.ENABLED:
            logger.debug(f"STATUS: enabled, {status.pending} pending")
        else:
            logger.debug("STATUS: disabled")
        if self.status_file is not None:
            write_status(status, self.status_file)

    async def offer_remote_setup(self, root: Path) -> None:
        choice = await self.warning(
            f"{root.name} has no git remote; commits stay local.", CONFIGURE_REMOTE
        )
        if choice != CONFIGURE_REMOTE:
            return

        url = await asyncio.to_thread(
            Prompt.ask, "   Remote URL", console=self.console, default=""
        )
        if not url.strip():
            return
        try:
            await guard.add_remote(root, self.remote_name, url.strip())
            self.console.print(f"[bold green]SUCCESS:[/bold green] Remote set to {url}")
        except AutoCommitError as e:
            self.console.print(f"[bold red]ERROR:[/bold red] Could not add remote: {e}")

    async def open_config(self) -> None:
        if not CONFIG_FILE.exists():
            CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
            CONFIG_FILE.write_text("# git-autocommit configuration\n\n[commit]\n")
        self.console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")
        try:
            await asyncio.to_thread(system.open_in_editor, CONFIG_FILE)
        except OSError as e:
            self.console.print(f"[red]Could not open editor: {e}[/red]")
