"""Log action — writes one formatted line per event."""

from __future__ import annotations

import logging
from typing import TextIO

from ..template import TemplateData, render_template
from ..watcher.events import Event
from .base import Action, write_to_sink

logger = logging.getLogger("watchrun")


class LogAction(Action):
    """Render ``format`` for each event and write it as a single line.

    Args:
        format: Template such as ``"[{{.Time}}] {{.Event}} {{.Path}}"``.
        dry_run: Render but write nothing.
        output: Text sink (stdout when omitted).
    """

    kind = "log"

    def __init__(
        self,
        format: str,
        *,
        dry_run: bool = False,
        output: TextIO | None = None,
    ):
        super().__init__(dry_run=dry_run, output=output)
        self._format = format

    async def execute(self, event: Event) -> None:
        line = render_template(self._format, TemplateData.from_event(event))
        if self._dry_run:
            logger.debug(f"Dry run, not writing: {line}")
            return
        write_to_sink(self.output, line + "\n")
