"""git-autocommit: debounced automatic commits for a git working tree.

This package provides the command-line interface, the long-running watcher,
and the core pieces behind it: a change tracker with glob exclusions, a
sliding-window commit scheduler, a retrying git executor, and the commit
orchestrator that stages, commits and pushes.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    errors,
    executor,
    filters,
    git_wrapper,
    guard,
    models,
    notifier,
    orchestrator,
    scheduler,
    session,
    system,
    tracker,
    watcher,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "errors",
    "executor",
    "filters",
    "git_wrapper",
    "guard",
    "models",
    "notifier",
    "orchestrator",
    "scheduler",
    "session",
    "system",
    "tracker",
    "watcher",
]
