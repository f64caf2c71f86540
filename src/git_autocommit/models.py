"""Value types shared by the watcher, the orchestrator and the session."""

import datetime
import enum
from dataclasses import dataclass
from pathlib import Path


class SessionState(enum.Enum):
    """Whether auto-commit is currently active for a workspace."""

    DISABLED = "disabled"
    ENABLED = "enabled"


class ChangeKind(enum.Enum):
    """The kind of filesystem change reported by a watch source."""

    CHANGED = "changed"
    CREATED = "created"
    DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """A single filesystem change notification.

    Attributes:
        path (Path): Absolute path of the changed file.
        kind (ChangeKind): What happened to it.
    """

    path: Path
    kind: ChangeKind = ChangeKind.CHANGED


@dataclass(frozen=True)
class Committed:
    """A commit was created.

    Attributes:
        pushed (bool): Whether it also reached the remote.
        message (str): The commit message used.
        push_error (str | None): Why the push failed, if it was attempted.
        remote_missing (bool): True if no remote was configured.
    """

    pushed: bool
    message: str = ""
    push_error: str | None = None
    remote_missing: bool = False


@dataclass(frozen=True)
class NothingToCommit:
    """The working tree was clean; nothing was staged or committed."""


@dataclass(frozen=True)
class Failed:
    """The attempt failed.

    Attributes:
        reason (str): Message of the originating error.
        step (str): The orchestration step that failed.
        fatal (bool): True if the session cannot continue (repository gone).
    """

    reason: str
    step: str
    fatal: bool = False


CommitOutcome = Committed | NothingToCommit | Failed


@dataclass(frozen=True)
class SessionStatus:
    """Snapshot shown by the status indicator.

    Attributes:
        state (SessionState): Enabled or disabled.
        root (Path | None): The watched workspace.
        pending (int): Number of pending changed paths.
        last_commit (datetime.datetime | None): Time of the last commit.
        commits (int): Successful commits this session.
        failures (int): Failed attempts this session.
    """

    state: SessionState
    root: Path | None = None
    pending: int = 0
    last_commit: datetime.datetime | None = None
    commits: int = 0
    failures: int = 0

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "root": str(self.root) if self.root else None,
            "pending": self.pending,
            "last_commit": self.last_commit.isoformat() if self.last_commit else None,
            "commits": self.commits,
            "failures": self.failures,
        }
