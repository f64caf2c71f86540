"""Glob-based exclusion of workspace paths.

Patterns are anchored on the full path relative to the workspace root, using
POSIX separators. ``**`` spans any number of path segments (including none),
``*`` and ``?`` stay within a single segment, and ``[...]`` is a character
class. A pattern that cannot be compiled is logged and matches nothing.
"""

import logging
import re
from collections.abc import Iterable
from functools import lru_cache
from pathlib import PurePath

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


def _translate(pattern: str) -> str:
    """Converts a glob pattern into an anchored regular expression source."""
    out: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    # '**/' may also match zero directories
                    i += 1
                    out.append("(?:.*/)?")
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 2 if pattern[i + 1 : i + 2] in ("!", "]") else i + 1)
            if end == -1:
                raise re.error(f"unterminated character class in {pattern!r}")
            body = pattern[i + 1 : end]
            if body.startswith("!"):
                body = "^" + body[1:]
            out.append(f"[{body.replace(chr(92), chr(92) * 2)}]")
            i = end
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out) + r"\Z"


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern[str] | None:
    """Compiles a glob pattern, returning None when it cannot be parsed."""
    try:
        return re.compile(_translate(pattern.strip()))
    except re.error as e:
        logger.warning(f"Ignoring invalid exclude pattern '{pattern}': {e}")
        return None


def normalize(path: str | PurePath) -> str:
    """Returns the POSIX form of a relative path, without a leading './'."""
    text = PurePath(path).as_posix()
    while text.startswith("./"):
        text = text[2:]
    return text


def is_excluded(path: str | PurePath, patterns: Iterable[str]) -> bool:
    """Checks whether a workspace-relative path matches any exclusion pattern.

    Args:
        path (str | PurePath): Path relative to the workspace root.
        patterns (Iterable[str]): Glob patterns, in configuration order.

    Returns:
        bool: True if at least one pattern matches the whole path.
    """
    rel = normalize(path)
    for pattern in patterns:
        compiled = compile_pattern(pattern)
        if compiled is not None and compiled.match(rel):
            return True
    return False
