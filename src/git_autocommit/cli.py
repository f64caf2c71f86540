import argparse
import asyncio
import datetime
import logging
import subprocess
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import daemon, guard, system
from .config import Config
from .constants import APP_NAME, CONFIG_FILE, GIT_DIR_NAME, LOG_FILE, STATUS_FILE
from .errors import AutoCommitError
from .executor import CommandExecutor
from .git_wrapper import GitRepo
from .notifier import ConsoleNotifier, read_status

logger = logging.getLogger(APP_NAME)
console = Console()


def _format_timestamp(value: str | None) -> str:
    if not value:
        return "never"
    try:
        stamp = datetime.datetime.fromisoformat(value)
    except ValueError:
        return value
    return stamp.strftime("%Y-%m-%d %H:%M:%S")


async def _repository_summary(root: Path) -> tuple[str, int, bool]:
    repo = GitRepo(root, CommandExecutor.from_config(root, Config.load(root)))
    branch = await repo.current_branch()
    changes = await repo.status_porcelain()
    has_remote = await guard.remote_exists(root)
    return branch, len(changes), has_remote


def show_status(status_file: Path = STATUS_FILE) -> None:
    """Displays the watcher status and the state of the current repository."""
    pid = system.read_pid()
    snapshot = read_status(status_file) if pid else None

    system_content = Text()
    system_content.append("Watcher: ", style="bold")
    if pid and snapshot and snapshot.get("state") == "enabled":
        system_content.append(f"Active (PID {pid})\n", style="bold green")
        system_content.append("Watching: ", style="bold")
        system_content.append(f"{snapshot.get('root')}\n")
        system_content.append("Pending:  ", style="bold")
        system_content.append(f"{snapshot.get('pending', 0)} file(s)\n")
        system_content.append("Last:     ", style="bold")
        system_content.append(_format_timestamp(snapshot.get("last_commit")) + "\n")
        system_content.append("Commits:  ", style="bold")
        system_content.append(
            f"{snapshot.get('commits', 0)} ({snapshot.get('failures', 0)} failed)"
        )
    elif pid:
        system_content.append(f"Running, disabled (PID {pid})", style="yellow")
    else:
        system_content.append("Stopped", style="bold red")

    console.print(Panel(system_content, title="Auto-commit Status", expand=False))

    cwd = Path.cwd()
    if not (cwd / GIT_DIR_NAME).exists():
        return

    try:
        branch, changes, has_remote = asyncio.run(_repository_summary(cwd))
    except AutoCommitError as e:
        console.print(f"[red]Could not read repository state: {e}[/red]")
        return

    repo_content = Text()
    repo_content.append("Branch:  ", style="bold")
    repo_content.append(f"{branch or 'detached'}\n", style="cyan")
    repo_content.append("Changes: ", style="bold")
    repo_content.append(
        f"{changes} uncommitted file(s)\n", style="yellow" if changes else "green"
    )
    repo_content.append("Remote:  ", style="bold")
    if has_remote:
        repo_content.append("configured", style="green")
    else:
        repo_content.append("none (commits stay local)", style="yellow")
    console.print(Panel(repo_content, title=cwd.name, expand=False))


def open_config() -> None:
    """Opens the global configuration file in the system default editor."""
    asyncio.run(ConsoleNotifier(console=console, status_file=None).open_config())


def tail_log() -> None:
    """Follows the watcher log file in real-time."""
    if not LOG_FILE.exists():
        console.print(f"[red]No log file found yet at {LOG_FILE}.[/red]")
        return

    console.print(f"Tailing [bold cyan]{LOG_FILE}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "1000", "-f", str(LOG_FILE)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")


def init_repo() -> int:
    """Bootstraps a repository in the current directory."""
    cwd = Path.cwd()
    if (cwd / GIT_DIR_NAME).exists():
        console.print("[yellow]Already a git repository.[/yellow]")
        return 0

    try:
        with console.status("Initializing repository...", spinner="dots"):
            asyncio.run(guard.initialize_repository(cwd))
    except AutoCommitError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        return 1
    console.print("[bold green]✔ Repository initialized.[/bold green]")
    return 0


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="git-autocommit Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row(
        "commit",
        "delay_ms",
        "int | str",
        '"30s"',
        "Quiet period after the last change before committing (min 5s).",
    )
    table.add_row(
        "",
        "message_template",
        "str",
        '"Auto commit: {date} - {files} files changed"',
        "Commit message; {date}, {branch} and {files} are substituted.",
    )
    table.add_row(
        "", "detailed_message", "bool", "false", "Append the list of changed files."
    )
    table.add_row(
        "", "max_files_to_list", "int", "10", "Files listed before '... and N more'."
    )
    table.add_row(
        "",
        "only_with_changes",
        "bool",
        "true",
        "Check 'git status' first and skip clean trees.",
    )

    table.add_row("push", "after_commit", "bool", "true", "Push after each commit.")
    table.add_row("", "confirm", "bool", "false", "Ask before every push.")

    table.add_row("retry", "max_retries", "int", "3", "Retries per git command.")
    table.add_row(
        "", "delay_ms", "int | str", '"2s"', "Fixed wait between retries."
    )

    table.add_row(
        "files",
        "exclude",
        "list",
        "[.git/**, ...]",
        "Glob patterns never counted as changes (added to the defaults).",
    )

    table.add_row(
        "notify", "on_commit", "bool", "true", "Show a message after each commit."
    )
    table.add_row("", "desktop", "bool", "false", "Mirror messages to the desktop.")

    table.add_row(
        "git", "remote_name", "str", '"origin"', "Remote that commits are pushed to."
    )
    table.add_row(
        "", "command_timeout", "int | str", '"2m"', "Timeout for each git command."
    )

    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for log files before rotation (e.g., '5mb', '1gb').",
    )

    console.print(table)
    console.print(
        f"[dim]Global: {CONFIG_FILE}. Per repository: autocommit.toml "
        "or \\[tool.autocommit] in pyproject.toml.[/dim]"
    )


class AutoCommitHelpFormatter(argparse.HelpFormatter):
    """Groups the subcommands under headers in the help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Auto-commit": ["watch", "now", "init"],
                "Inspection": ["status", "log", "config"],
                "General": ["help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        usage=argparse.SUPPRESS,
        formatter_class=AutoCommitHelpFormatter,
        add_help=False,
    )
    parser.add_argument(
        "-h",
        "--help",
        action="help",
        default=argparse.SUPPRESS,
        help=argparse.SUPPRESS,
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command")

    watch_parser = subparsers.add_parser(
        "watch", help="Watch the current repository and auto-commit (default)"
    )
    watch_parser.add_argument(
        "--background",
        action="store_true",
        help="Run unattended: no prompts, log to the state directory",
    )
    subparsers.add_parser("now", help="Commit pending changes immediately")
    subparsers.add_parser("init", help="Initialize a repository in the current directory")
    subparsers.add_parser("status", help="Show watcher and repository status")
    subparsers.add_parser("log", help="Tail the watcher log file")

    config_parser = subparsers.add_parser(
        "config", help="Open global config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    subparsers.add_parser("help", help="Show this help message")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-autocommit CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "help":
        parser.print_help()
        return
    elif args.command == "now":
        root = Path.cwd().resolve()
        daemon.setup_logging(True, args.verbose)
        code = asyncio.run(daemon.commit_once(root))
        if code:
            sys.exit(code)
        return
    elif args.command == "init":
        code = init_repo()
        if code:
            sys.exit(code)
        return
    elif args.command == "status":
        show_status()
        return
    elif args.command == "log":
        tail_log()
        return
    elif args.command == "config":
        if getattr(args, "list", False):
            show_config_reference()
        else:
            open_config()
        return

    # Default Action: watch the current directory.
    background = getattr(args, "background", False)
    code = daemon.main(interactive=not background, verbose=args.verbose)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
