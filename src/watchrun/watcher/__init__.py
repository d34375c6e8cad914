"""File system watching: recursive watcher, events, debouncing."""

from .debounce import Debouncer
from .events import Event, EventType, parse_event_type
from .recursive import RecursiveWatcher
from .stream import BoundedStream, StreamClosed

__all__ = [
    "BoundedStream",
    "Debouncer",
    "Event",
    "EventType",
    "RecursiveWatcher",
    "StreamClosed",
    "parse_event_type",
]
