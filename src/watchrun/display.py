"""Colored terminal output for events and action results."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, TextIO

import click

from .config import WatchrunConfig, format_duration
from .exceptions import WatchError
from .watcher.events import Event, EventType

if TYPE_CHECKING:
    from .pipeline import ActionResult

_EVENT_COLORS = {
    EventType.CREATE: "green",
    EventType.MODIFY: "yellow",
    EventType.DELETE: "red",
    EventType.RENAME: "blue",
}


def _clock() -> str:
    return datetime.now().strftime("%H:%M:%S")


def _dim(text: str) -> str:
    return click.style(text, dim=True)


class Display:
    """Writes human-readable pipeline activity to a terminal stream.

    Colors are stripped automatically when the stream is not a terminal,
    unless ``color`` forces them on or off.
    """

    def __init__(self, stream: TextIO | None = None, color: bool | None = None):
        self._stream = stream
        self._color = color

    def _echo(self, text: str = "", nl: bool = True) -> None:
        click.echo(text, file=self._stream, nl=nl, color=self._color)

    # ── Lifecycle ────────────────────────────────────────────

    def banner(self, config: WatchrunConfig, config_path: str, root: str = ".") -> None:
        self._echo()
        self._echo(f"  {click.style('watchrun', bold=True)} — file system watcher")
        self._echo(_dim(f"  config: {config_path}"))
        self._echo(_dim(f"  root: {root}"))
        if config.global_.debounce > 0:
            self._echo(_dim(f"  debounce: {format_duration(config.global_.debounce)}"))
        if config.global_.ignore:
            self._echo(_dim(f"  ignore: {', '.join(config.global_.ignore)}"))
        self._echo()

        for rule in config.rules:
            arrow = click.style("▸", fg="cyan")
            extra = ""
            if rule.events:
                extra += f" on {','.join(str(e) for e in rule.events)}"
            if rule.debounce is not None:
                extra += f" every {format_duration(rule.debounce)}"
            self._echo(
                f"  {arrow} {rule.name}"
                + _dim(f" [{rule.action.type}] {', '.join(rule.watch)}{extra}")
            )

        self._echo()
        self._echo(_dim("  Watching for changes... (Ctrl+C to stop)"))
        self._echo()

    def shutdown(self) -> None:
        self._echo()
        self._echo(_dim("  Shutting down..."))

    # ── Pipeline activity ────────────────────────────────────

    def event(self, event: Event, rule_name: str = "") -> None:
        kind = click.style(str(event.type), fg=_EVENT_COLORS.get(event.type))
        line = f"{_dim(_clock())} {kind} {event.path}"
        if rule_name:
            line += _dim(f" → {rule_name}")
        self._echo(line)

    def action_result(self, result: ActionResult) -> None:
        if result.error is not None:
            cross = click.style("✗", fg="red")
            self._echo(f"  {cross} {result.rule_name}: {result.error}")
            return
        check = click.style("✓", fg="green")
        elapsed_ms = int(result.elapsed * 1000)
        self._echo(f"  {check} {result.rule_name}" + _dim(f" ({elapsed_ms}ms)"))

    def dry_run(self, rule_name: str, action_type: str) -> None:
        notice = click.style("[DRY RUN]", fg="yellow")
        self._echo(f"  {notice} would execute: {rule_name} ({action_type})")

    def verbose(self, event: Event, reason: str) -> None:
        self._echo(_dim(f"{_clock()} [filtered] {event.type} {event.path} ({reason})"))

    def watch_error(self, error: WatchError) -> None:
        self._echo(click.style(f"  ! {error}", fg="red"))
