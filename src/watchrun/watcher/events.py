"""Normalized filesystem events emitted by the watcher."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from enum import Enum


class EventType(str, Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    RENAME = "rename"

    def __str__(self) -> str:
        return self.value


def parse_event_type(value: str) -> EventType:
    """Convert a config string to an EventType, raising ValueError for unknown values."""
    try:
        return EventType(value)
    except ValueError:
        raise ValueError(f"unknown event type: {value}") from None


@dataclass(frozen=True)
class Event:
    """A single file system change."""

    path: str
    type: EventType
    name: str
    dir: str

    @classmethod
    def for_path(cls, path: str, event_type: EventType) -> Event:
        return cls(
            path=path,
            type=event_type,
            name=os.path.basename(path),
            dir=os.path.dirname(path) or ".",
        )

    def relative_to(self, root: str) -> Event:
        """Re-express the event relative to ``root`` when it lies beneath it."""
        try:
            rel = os.path.relpath(self.path, root)
        except ValueError:
            # Different drive on Windows
            return self
        if rel == os.pardir or rel.startswith(os.pardir + os.sep):
            return self
        return replace(
            self,
            path=rel,
            name=os.path.basename(rel),
            dir=os.path.dirname(rel) or ".",
        )
