"""watchrun — rule-driven file system watcher."""

__version__ = "0.1.0"

from .exceptions import (
    ConfigError,
    ConstructionError,
    ExecutionError,
    ProcessError,
    TemplateError,
    TransportError,
    WatchError,
    WatchExtendError,
    WatchOverflowError,
    WatchrunError,
)

__all__ = [
    "__version__",
    "WatchrunError",
    "ConfigError",
    "ConstructionError",
    "WatchError",
    "WatchExtendError",
    "WatchOverflowError",
    "ExecutionError",
    "TemplateError",
    "TransportError",
    "ProcessError",
]
