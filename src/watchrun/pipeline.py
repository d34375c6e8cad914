"""Pipeline — wires the watcher, rule engine, debouncer and actions together.

    watcher ──event──▶ rule engine ──match──▶ debouncer ──▶ action.execute()

One action instance is built per rule, so a command rule owns its process
across events. Failures of individual actions are reported and never stop
the pipeline; only failing to start the watcher does.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from contextlib import suppress
from dataclasses import dataclass
from functools import partial
from typing import Protocol, TextIO

from .actions import Action, build_action
from .config import WatchrunConfig
from .exceptions import ConstructionError, ExecutionError, WatchError
from .rules import Match, RuleEngine
from .watcher import Debouncer, Event, EventType, RecursiveWatcher

logger = logging.getLogger("watchrun")


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one dispatched action."""

    rule_name: str
    event: Event
    error: BaseException | None
    elapsed: float  # seconds

    @property
    def ok(self) -> bool:
        return self.error is None


class Reporter(Protocol):
    def event(self, event: Event, rule_name: str = "") -> None: ...

    def verbose(self, event: Event, reason: str) -> None: ...

    def dry_run(self, rule_name: str, action_type: str) -> None: ...

    def action_result(self, result: ActionResult) -> None: ...

    def watch_error(self, error: WatchError) -> None: ...


class Pipeline:
    """Runs rules against a directory tree until stopped.

    Args:
        config: Validated configuration.
        root: Directory to watch. Event paths are reported relative to it.
        dry_run: Build actions in dry-run mode (no side effects).
        verbose: Report events that no rule matched.
        reporter: Receives events and action results (e.g. Display).
        output: Sink for command output and log lines (stdout if None).
        use_polling: Poll the file system instead of using OS notifications.
    """

    def __init__(
        self,
        config: WatchrunConfig,
        root: str | os.PathLike[str] = ".",
        *,
        dry_run: bool = False,
        verbose: bool = False,
        reporter: Reporter | None = None,
        output: TextIO | None = None,
        use_polling: bool = False,
    ):
        self._config = config
        self._root = os.path.abspath(os.fspath(root))
        self._dry_run = dry_run
        self._verbose = verbose
        self._reporter = reporter
        self._use_polling = use_polling

        self._engine = RuleEngine.from_config(config)
        self._actions: list[Action] = [
            build_action(rule.action, dry_run=dry_run, output=output)
            for rule in config.rules
        ]
        self._debouncer = Debouncer(config.global_.debounce)
        self._pending: dict[str, Event] = {}
        self._watcher: RecursiveWatcher | None = None
        self._started = asyncio.Event()
        self._stopping = False
        self._stopped = asyncio.Event()

    # ── Public API ───────────────────────────────────────────

    @property
    def root(self) -> str:
        return self._root

    @property
    def engine(self) -> RuleEngine:
        return self._engine

    @property
    def actions(self) -> list[Action]:
        return list(self._actions)

    @property
    def watcher(self) -> RecursiveWatcher | None:
        return self._watcher

    async def wait_started(self) -> None:
        """Wait until the watcher is live and events are being consumed."""
        await self._started.wait()

    async def run(self) -> None:
        """Watch and dispatch until :meth:`stop` is called.

        Raises:
            ConstructionError: the root directory could not be watched.
        """
        try:
            watcher = await RecursiveWatcher.start(
                self._root, use_polling=self._use_polling
            )
        except ConstructionError:
            await self.stop()
            raise
        self._watcher = watcher
        if self._stopping:
            await watcher.close()
            return

        errors_task = asyncio.create_task(self._report_errors(watcher))
        self._started.set()
        try:
            async for event in watcher.events():
                self.handle_event(event.relative_to(self._root))
        finally:
            # Closing the watcher ends the error stream; report what is left
            await watcher.close()
            with suppress(asyncio.CancelledError):
                await errors_task
            await self.stop()

    def handle_event(self, event: Event) -> list[Match]:
        """Evaluate one event and schedule its actions through the debouncer."""
        matches = self._engine.evaluate(event)
        if not matches:
            if self._verbose and self._reporter is not None:
                reason = "ignored" if self._engine.is_ignored(event.path) else "no rule"
                self._reporter.verbose(event, reason)
            return matches

        for match in matches:
            if self._reporter is not None:
                self._reporter.event(event, match.rule_name)

            rule = self._config.rules[match.rule_index]
            key = f"{match.rule_name}:{event.path}"
            pending = self._pending.get(key)
            # A write right after a create still reports the create
            if (
                pending is not None
                and pending.type is EventType.CREATE
                and event.type is EventType.MODIFY
            ):
                fired = pending
            else:
                fired = event
            self._pending[key] = fired
            callback = partial(self._fire, key, match, fired)
            if rule.debounce is not None:
                self._debouncer.trigger_with_delay(key, rule.debounce, callback)
            else:
                self._debouncer.trigger(key, callback)
        return matches

    async def stop(self) -> None:
        """Stop watching, cancel pending timers and release action resources."""
        if self._stopping:
            await self._stopped.wait()
            return
        self._stopping = True

        try:
            if self._watcher is not None:
                await self._watcher.close()
            self._debouncer.stop()
            self._pending.clear()
            await self._debouncer.join()
            for rule, action in zip(self._config.rules, self._actions):
                try:
                    await action.close()
                except Exception as e:
                    logger.warning(f"Closing action for rule '{rule.name}' failed: {e}")
        finally:
            self._stopped.set()
            logger.info("Pipeline stopped")

    # ── Internal helpers ─────────────────────────────────────

    async def _fire(self, key: str, match: Match, event: Event) -> ActionResult:
        if self._pending.get(key) is event:
            del self._pending[key]
        return await self._dispatch(match, event)

    async def _dispatch(self, match: Match, event: Event) -> ActionResult:
        action = self._actions[match.rule_index]
        if self._dry_run and self._reporter is not None:
            self._reporter.dry_run(match.rule_name, action.kind)

        error: BaseException | None = None
        start = time.monotonic()
        try:
            await action.execute(event)
        except ExecutionError as e:
            error = e
            logger.warning(f"Rule '{match.rule_name}' failed on {event.path}: {e}")
        except Exception as e:
            error = e
            logger.exception(f"Rule '{match.rule_name}' crashed on {event.path}")
        elapsed = time.monotonic() - start

        result = ActionResult(
            rule_name=match.rule_name, event=event, error=error, elapsed=elapsed
        )
        if self._reporter is not None:
            self._reporter.action_result(result)
        return result

    async def _report_errors(self, watcher: RecursiveWatcher) -> None:
        async for error in watcher.errors():
            logger.warning(f"Watcher: {error}")
            if self._reporter is not None:
                self._reporter.watch_error(error)
