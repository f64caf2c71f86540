import asyncio
import atexit
import contextlib
import logging
import os
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console

from .config import Config
from .constants import (
    APP_NAME,
    CONFIG_FILE,
    LOCAL_CONFIG_NAME,
    LOG_FILE,
    PID_FILE,
    STATUS_FILE,
)
from .models import Committed, NothingToCommit
from .notifier import ConsoleNotifier
from .session import AutoCommitSession
from .watcher import WatchfilesSource

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

console = Console()

# How often the run loop checks whether the session disabled itself.
_IDLE_CHECK_SECONDS = 1.0


def setup_logging(
    interactive: bool, verbose: bool = False, max_log_size: int | None = None
) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to stderr
                            and to a rotating file in the state directory.
        verbose (bool): Log at DEBUG instead of INFO.
        max_log_size (int | None): Rotation threshold for the log file.
    """
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        try:
            LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                LOG_FILE,
                maxBytes=max_log_size or Config().limits.max_log_size,
                backupCount=5,
            )
        except OSError as e:
            logger.warning(f"Could not open log file {LOG_FILE}: {e}")
            return
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def config_paths(root: Path) -> list[Path]:
    """Files whose edits trigger a configuration reload."""
    return [CONFIG_FILE, root / LOCAL_CONFIG_NAME, root / "pyproject.toml"]


def write_pid_file() -> None:
    """Records this process in the PID file and removes it at exit."""
    try:
        PID_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(PID_FILE, "w") as f:
            f.write(str(os.getpid()))

        # Ensure cleanup on exit.
        atexit.register(lambda: PID_FILE.unlink(missing_ok=True))
    except OSError as e:
        logger.warning(f"Could not write PID file: {e}")


def build_session(root: Path, interactive: bool, status: bool = True) -> AutoCommitSession:
    """Wires a session to a rich console notifier and a watchfiles source.

    Args:
        root (Path): Workspace used to locate local configuration.
        interactive (bool): Whether prompts may be shown.
        status (bool): Publish status snapshots for `git-autocommit status`.

    Returns:
        AutoCommitSession: A disabled session.
    """
    config = Config.load(root)
    notifier = ConsoleNotifier(
        console=console,
        interactive=interactive,
        desktop=config.notify.desktop,
        remote_name=config.git.remote_name,
        status_file=STATUS_FILE if status else None,
    )
    return AutoCommitSession(config, notifier, WatchfilesSource())


def reload_config(session: AutoCommitSession) -> None:
    """Re-reads configuration, keeping previous values for rejected keys."""
    config = Config.load(session.root, previous=session.config)
    session.apply_config(config)
    if isinstance(session.notifier, ConsoleNotifier):
        session.notifier.desktop = config.notify.desktop
        session.notifier.remote_name = config.git.remote_name


async def run(root: Path, interactive: bool = True) -> int:
    """Watches `root` and auto-commits until interrupted.

    Args:
        root (Path): The workspace root.
        interactive (bool): Whether prompts may be shown.

    Returns:
        int: Process exit code.
    """
    session = build_session(root, interactive)
    if not await session.enable(root):
        return 1

    write_pid_file()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform's event loop.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    config_watch = session.source.on_config_change(
        config_paths(session.root), lambda: reload_config(session)
    )

    try:
        while session.enabled and not stop.is_set():
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop.wait(), _IDLE_CHECK_SECONDS)
    finally:
        await config_watch.dispose()
        await session.close()

    return 0 if stop.is_set() else 1


async def commit_once(root: Path, interactive: bool = True) -> int:
    """Runs a single forced commit attempt in `root`.

    Returns:
        int: 0 if the attempt committed or found nothing to do, 1 otherwise.
    """
    session = build_session(root, interactive, status=False)
    if not await session.enable(root):
        return 1
    try:
        outcome = await session.commit_now()
    finally:
        await session.close()
    return 0 if isinstance(outcome, (Committed, NothingToCommit)) else 1


def main(root: Path | None = None, interactive: bool = False, verbose: bool = False) -> int:
    """The watcher entry point.

    Args:
        root (Path | None): Workspace to watch. Defaults to the current directory.
        interactive (bool): Whether to log to stdout and allow prompts.
        verbose (bool): Enable debug logging.

    Returns:
        int: Process exit code.
    """
    root = (root or Path.cwd()).resolve()
    setup_logging(interactive, verbose, Config.load(root).limits.max_log_size)
    try:
        return asyncio.run(run(root, interactive=interactive))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
