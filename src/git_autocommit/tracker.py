import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path, PurePath

from . import filters
from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class ChangeSummary:
    """A truncated, insertion-ordered view of pending changes.

    Attributes:
        files (tuple[str, ...]): The first changed paths, oldest first.
        omitted (int): How many further paths were left out.
    """

    files: tuple[str, ...]
    omitted: int = 0

    def lines(self) -> list[str]:
        """Renders the summary as bullet lines for a commit message."""
        out = [f"- {name}" for name in self.files]
        if self.omitted:
            out.append(f"... and {self.omitted} more")
        return out


class ChangeTracker:
    """Accumulates distinct workspace-relative paths changed since the last commit.

    Insertion order is preserved so that a truncated summary always shows the
    first changes. All mutation happens on the session's event loop.

    Attributes:
        root (Path): The workspace root that recorded paths are relative to.
    """

    def __init__(self, root: Path, patterns: Iterable[str] | Callable[[], Iterable[str]] = ()):
        """Initializes an empty tracker.

        Args:
            root (Path): The workspace root.
            patterns: Exclusion globs, or a callable returning the current ones
                (so a configuration reload takes effect without rebuilding).
        """
        self.root = root
        self._patterns = patterns
        self._paths: dict[str, None] = {}

    @property
    def patterns(self) -> list[str]:
        if callable(self._patterns):
            return list(self._patterns())
        return list(self._patterns)

    def relative(self, path: str | PurePath) -> str | None:
        """Maps a path onto the workspace, or None if it lies outside of it."""
        candidate = PurePath(path)
        if candidate.is_absolute():
            try:
                candidate = candidate.relative_to(self.root)
            except ValueError:
                return None
        rel = filters.normalize(candidate)
        if not rel or rel == "." or rel.startswith("../"):
            return None
        return rel

    def is_excluded(self, path: str | PurePath) -> bool:
        """Returns True for paths that must never count as pending changes."""
        rel = self.relative(path)
        return rel is None or filters.is_excluded(rel, self.patterns)

    def record(self, path: str | PurePath) -> bool:
        """Adds a changed path unless it is excluded.

        Args:
            path (str | PurePath): Absolute or workspace-relative path.

        Returns:
            bool: True if the path was accepted (new or already pending).
        """
        rel = self.relative(path)
        if rel is None or filters.is_excluded(rel, self.patterns):
            return False
        if rel not in self._paths:
            self._paths[rel] = None
            logger.debug(f"Pending change recorded: {rel}")
        return True

    def count(self) -> int:
        return len(self._paths)

    def paths(self) -> list[str]:
        return list(self._paths)

    def summary(self, max_files: int) -> ChangeSummary:
        """Returns at most `max_files` paths plus the number left out."""
        limit = max(0, max_files)
        files = tuple(self._paths)
        return ChangeSummary(files=files[:limit], omitted=max(0, len(files) - limit))

    def clear(self) -> None:
        self._paths.clear()

    def forget(self, paths: Iterable[str]) -> None:
        """Drops the given paths, keeping anything recorded since they were read."""
        for rel in paths:
            self._paths.pop(rel, None)

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, path: object) -> bool:
        return path in self._paths
