"""Placeholder templates for command lines and log formats.

A template is plain text with ``{{.Field}}`` placeholders, for example
``go test ./{{.Dir}}/...`` or ``[{{ .Time }}] {{.Event}} {{.Path}}``.
Available fields: Path, Event, Dir, Name, Time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from .exceptions import TemplateError
from .watcher.events import Event

FIELDS = ("Path", "Event", "Dir", "Name", "Time")

_PLACEHOLDER = re.compile(r"\{\{\s*\.(\w+)\s*\}\}")


def rfc3339_now() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


@dataclass(frozen=True)
class TemplateData:
    path: str
    event: str
    dir: str
    name: str
    time: str

    @classmethod
    def from_event(cls, event: Event, time: str | None = None) -> TemplateData:
        return cls(
            path=event.path,
            event=str(event.type),
            dir=event.dir,
            name=event.name,
            time=time or rfc3339_now(),
        )

    def fields(self) -> dict[str, str]:
        return {
            "Path": self.path,
            "Event": self.event,
            "Dir": self.dir,
            "Name": self.name,
            "Time": self.time,
        }


def check_template(template: str) -> None:
    """Raise TemplateError if the template cannot be rendered."""
    for match in _PLACEHOLDER.finditer(template):
        if match.group(1) not in FIELDS:
            raise TemplateError(
                f"unknown template field .{match.group(1)} "
                f"(available: {', '.join(FIELDS)})"
            )

    leftover = _PLACEHOLDER.sub("", template)
    if "{{" in leftover or "}}" in leftover:
        raise TemplateError(f"malformed placeholder in template: {template!r}")


def render_template(template: str, data: TemplateData) -> str:
    check_template(template)
    values = data.fields()
    return _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)
