"""Custom exception hierarchy for watchrun.

All watchrun exceptions inherit from WatchrunError, allowing callers
to catch broad or specific errors:

    try:
        await action.execute(event)
    except TemplateError as e:
        print(f"Bad template: {e}")
    except ExecutionError as e:
        print(f"Action failed: {e}")
    except WatchrunError as e:
        print(f"watchrun error: {e}")
"""

from __future__ import annotations


class WatchrunError(Exception):
    """Base exception for all watchrun errors."""


class ConfigError(WatchrunError):
    """Raised when configuration is invalid or missing."""


class ConstructionError(WatchrunError):
    """Raised when a watcher cannot be started on its root directory."""


class WatchError(WatchrunError):
    """Non-fatal watcher problem, reported on the watcher's error stream."""


class WatchExtendError(WatchError):
    """Raised when a newly created directory cannot be added to the watch set."""

    def __init__(self, path: str, cause: BaseException | None = None):
        self.path = path
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"cannot watch new directory {path}{detail}")


class WatchOverflowError(WatchError):
    """Raised when OS notifications are dropped because the intake is full."""


class ExecutionError(WatchrunError):
    """Raised when an action's side effect could not be fully initiated."""


class TemplateError(ExecutionError):
    """Raised when an action template is malformed or references unknown fields."""


class TransportError(ExecutionError):
    """Raised when a webhook request fails at the network level."""


class ProcessError(ExecutionError):
    """Raised when a command action cannot start its child process."""
