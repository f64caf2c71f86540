import copy
import logging
import re
import tomllib
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, ClassVar

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_EXCLUDES,
    LOCAL_CONFIG_NAME,
    MIN_COMMIT_DELAY_MS,
)
from .errors import ConfigurationError

logger = logging.getLogger(APP_NAME)

DEFAULT_TEMPLATE = "Auto commit: {date} - {files} files changed"


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid size format '{value}'")
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ConfigurationError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_duration_ms(value: int | str) -> int:
    """Converts durations (e.g., '30s', '2m', '500ms') to milliseconds.

    Bare integers are taken to already be milliseconds.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration format '{value}'")
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(ms|s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ConfigurationError(f"Invalid duration format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "ms": 1,
        "s": 1000,
        "sec": 1000,
        "m": 60_000,
        "min": 60_000,
        "h": 3_600_000,
        "hr": 3_600_000,
    }
    return int(num * multiplier[unit])


def _commit_delay(value: Any) -> int:
    delay = parse_duration_ms(value)
    if delay < MIN_COMMIT_DELAY_MS:
        raise ConfigurationError(f"must be at least {MIN_COMMIT_DELAY_MS}ms (got {delay}ms)")
    return delay


def _non_negative_ms(value: Any) -> int:
    delay = parse_duration_ms(value)
    if delay < 0:
        raise ConfigurationError(f"must not be negative (got {delay})")
    return delay


def _timeout_seconds(value: Any) -> float:
    seconds = parse_duration_ms(value) / 1000 if isinstance(value, str) else value
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        raise ConfigurationError(f"Invalid timeout '{value}'")
    if seconds <= 0:
        raise ConfigurationError(f"must be positive (got {value})")
    return float(seconds)


def _non_negative_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"expected an integer, got {value!r}")
    if value < 0:
        raise ConfigurationError(f"must not be negative (got {value})")
    return value


def _boolean(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f"expected true or false, got {value!r}")
    return value


def _string(value: Any) -> str:
    if not isinstance(value, str):
        raise ConfigurationError(f"expected a string, got {value!r}")
    return value


def _pattern_list(value: Any) -> list[str]:
    if isinstance(value, str) or not isinstance(value, list):
        raise ConfigurationError(f"expected a list of glob strings, got {value!r}")
    if not all(isinstance(p, str) for p in value):
        raise ConfigurationError("every pattern must be a string")
    return list(dict.fromkeys(value))


@dataclass
class CommitConfig:
    """Commit timing and message settings.

    Attributes:
        delay_ms (int): Quiet period after the last change before committing.
        message_template (str): Template with {date}, {branch} and {files}.
        detailed_message (bool): Append the list of changed files to the message.
        max_files_to_list (int): Cap on listed files in a detailed message.
        only_with_changes (bool): Skip attempts when the working tree is clean.
    """

    delay_ms: int = 30_000
    message_template: str = DEFAULT_TEMPLATE
    detailed_message: bool = False
    max_files_to_list: int = 10
    only_with_changes: bool = True


@dataclass
class PushConfig:
    """Push settings.

    Attributes:
        after_commit (bool): Push to the remote after every commit.
        confirm (bool): Ask before each push.
    """

    after_commit: bool = True
    confirm: bool = False


@dataclass
class RetryConfig:
    """Retry policy for git invocations.

    Attributes:
        max_retries (int): Extra attempts after the first failure.
        delay_ms (int): Fixed wait between attempts.
    """

    max_retries: int = 3
    delay_ms: int = 2000


@dataclass
class FilesConfig:
    """Watch filtering settings.

    Attributes:
        exclude (list[str]): Glob patterns whose changes are ignored.
    """

    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDES))


@dataclass
class NotifyConfig:
    """Notification settings.

    Attributes:
        on_commit (bool): Show a message after each successful commit.
        desktop (bool): Mirror messages as desktop notifications.
    """

    on_commit: bool = True
    desktop: bool = False


@dataclass
class GitConfig:
    """Git invocation settings.

    Attributes:
        remote_name (str): Remote used for pushes.
        command_timeout (float): Seconds before a git process is killed.
    """

    remote_name: str = "origin"
    command_timeout: float = 120.0


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


# Input-boundary validators, keyed by (section, key).
_VALIDATORS: dict[tuple[str, str], Callable[[Any], Any]] = {
    ("commit", "delay_ms"): _commit_delay,
    ("commit", "message_template"): _string,
    ("commit", "detailed_message"): _boolean,
    ("commit", "max_files_to_list"): _non_negative_int,
    ("commit", "only_with_changes"): _boolean,
    ("push", "after_commit"): _boolean,
    ("push", "confirm"): _boolean,
    ("retry", "max_retries"): _non_negative_int,
    ("retry", "delay_ms"): _non_negative_ms,
    ("files", "exclude"): _pattern_list,
    ("notify", "on_commit"): _boolean,
    ("notify", "desktop"): _boolean,
    ("git", "remote_name"): _string,
    ("git", "command_timeout"): _timeout_seconds,
    ("limits", "max_log_size"): parse_size,
}

_SECTIONS = ("commit", "push", "retry", "files", "notify", "git", "limits")


@dataclass
class Config:
    """Configuration snapshot for one auto-commit session.

    Attributes:
        commit (CommitConfig): Debounce and message settings.
        push (PushConfig): Push behavior.
        retry (RetryConfig): Retry policy.
        files (FilesConfig): Exclusion patterns.
        notify (NotifyConfig): Notification behavior.
        git (GitConfig): Git invocation settings.
        limits (LimitsConfig): Resource limits.
    """

    commit: CommitConfig = field(default_factory=CommitConfig)
    push: PushConfig = field(default_factory=PushConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    files: FilesConfig = field(default_factory=FilesConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    git: GitConfig = field(default_factory=GitConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    # Keys rejected while merging, so a reload can keep the previous value.
    _rejected: set[tuple[str, str]] = field(
        default_factory=set, repr=False, compare=False
    )

    # Cache for the base global configuration
    _global_cache: ClassVar["Config | None"] = None

    @classmethod
    def load(
        cls, repo_path: Path | None = None, previous: "Config | None" = None
    ) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            repo_path (Path | None): The repository root to search for local config.
            previous (Config | None): The configuration currently in effect. When
                given, the global file is re-read and any rejected value falls
                back to the previous setting instead of the default.

        Returns:
            Config: The fully merged configuration object.
        """
        if previous is not None:
            cls._global_cache = None

        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        instance = copy.deepcopy(cls._global_cache)

        # 2. Load Local Config (if applicable)
        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section="tool.autocommit")

        # 3. Keep previously valid values for anything rejected this time
        if previous is not None:
            for section_name, key in instance._rejected:
                old = getattr(getattr(previous, section_name), key)
                section = getattr(instance, section_name)
                setattr(instance, section_name, replace(section, **{key: old}))

        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.autocommit').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
            return
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return

        if section:
            for key in section.split("."):
                data = data.get(key, {})

        if not data:
            return

        unknown = set(data.keys()) - set(_SECTIONS)
        if unknown:
            logger.warning(
                f"Unknown config sections in {path.name}: {', '.join(sorted(unknown))}. "
                "Ignoring."
            )

        for name in _SECTIONS:
            updates = data.get(name)
            if updates is None:
                continue
            if not isinstance(updates, dict):
                logger.warning(f"Config section [{name}] in {path.name} is not a table.")
                continue

            updates = dict(updates)
            if name == "files" and "exclude" in updates:
                # Exclusions accumulate across layers instead of replacing.
                extra = updates.pop("exclude")
                try:
                    patterns = _pattern_list(extra)
                except ValueError as e:
                    self._reject(name, "exclude", e)
                else:
                    merged = [*self.files.exclude, *patterns]
                    self.files = replace(self.files, exclude=list(dict.fromkeys(merged)))
                    self._rejected.discard((name, "exclude"))

            setattr(self, name, self._update_dataclass(name, getattr(self, name), updates))

    def _reject(self, section_name: str, key: str, error: Exception) -> None:
        logger.warning(
            f"Config error in [{section_name}].{key}: {error}. Keeping previous value."
        )
        self._rejected.add((section_name, key))

    def _update_dataclass(self, section_name: str, instance: Any, updates: dict) -> Any:
        """Updates one section, warning on invalid keys and rejecting bad values."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Validate each key on its own so one bad value never drops the rest
        for k, v in updates.items():
            if k not in valid_keys:
                continue
            try:
                filtered_updates[k] = _VALIDATORS[(section_name, k)](v)
            except ValueError as e:
                self._reject(section_name, k, e)
            else:
                self._rejected.discard((section_name, k))

        return replace(instance, **filtered_updates)
