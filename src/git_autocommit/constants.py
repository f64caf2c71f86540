import os
from pathlib import Path

"""Global constants and path definitions for git-autocommit.

This module defines the filesystem layout (adhering to XDG standards where
applicable), application identifiers, and the git-facing defaults shared by the
watcher, the commit orchestrator and the CLI.
"""

# --- Identity ---
APP_NAME = "git-autocommit"
"""str: The human-readable application name (also the logger name)."""

BOT_NAME = "git-autocommit"
"""str: Author name used for the bootstrap commit of a new repository."""

BOT_EMAIL = "git-autocommit@localhost"
"""str: Author email used for the bootstrap commit of a new repository."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-autocommit"
"""Path: The directory for runtime state data (logs, status, pid)."""

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

STATUS_FILE = STATE_DIR / "status.json"
"""Path: The last status snapshot published by a running watcher."""

PID_FILE = STATE_DIR / "daemon.pid"
"""Path: The file path storing the watcher's process ID."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-autocommit"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "autocommit.toml"
"""str: Repository-local configuration file name."""

# --- Git / Logic Constants ---
GIT_DIR_NAME = ".git"
"""str: The repository metadata directory."""

NOTHING_TO_COMMIT = "nothing to commit"
"""str: Sentinel returned by the executor when git reports a clean tree."""

NOTHING_TO_COMMIT_MARKERS = (
    "nothing to commit",
    "nothing added to commit",
    "no changes added to commit",
)
"""tuple[str, ...]: Fragments of git output that identify the benign no-op."""

DEFAULT_COMMIT_MESSAGE = "Auto commit"
"""str: Fallback when the rendered template is blank."""

DEFAULT_BRANCH = "main"
"""str: Branch substituted into messages when the current one is unknown."""

MIN_COMMIT_DELAY_MS = 5000
"""int: Lower bound of the debounce window."""

MAX_OUTPUT_BYTES = 10 * 1024 * 1024
"""int: Ceiling on captured stdout/stderr per git invocation."""

DEFAULT_IGNORES = [
    "__pycache__/",
    "node_modules/",
    "*.swp",
    "*~",
    ".DS_Store",
]
"""list[str]: Patterns written to .gitignore when bootstrapping a repository."""

DEFAULT_EXCLUDES = [
    ".git/**",
    "**/node_modules/**",
    "**/__pycache__/**",
    "**/*.swp",
    "**/*~",
]
"""list[str]: Watch patterns never recorded as pending changes."""
