"""Action abstraction — the side effect a matched rule performs."""

from __future__ import annotations

import sys
import threading
from abc import ABC, abstractmethod
from typing import TextIO

from ..watcher.events import Event

# One lock for every sink so lines from different actions never interleave
_sink_lock = threading.Lock()


def write_to_sink(sink: TextIO, text: str) -> None:
    """Write ``text`` in one call and flush."""
    with _sink_lock:
        sink.write(text)
        flush = getattr(sink, "flush", None)
        if flush is not None:
            flush()


class Action(ABC):
    """Abstract interface for all action types."""

    kind: str = ""

    def __init__(self, *, dry_run: bool = False, output: TextIO | None = None):
        self._dry_run = dry_run
        self._output = output

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    @property
    def output(self) -> TextIO:
        # Resolved lazily so redirected stdout is honoured
        return self._output if self._output is not None else sys.stdout

    @abstractmethod
    async def execute(self, event: Event) -> None:
        """Perform the side effect for ``event``.

        Raises:
            ExecutionError: the side effect could not be initiated.
        """

    async def close(self) -> None:
        """Release held resources (processes, sessions)."""
