"""Recursive directory watching on top of the watchdog library.

The watcher keeps a *watch set*: every directory under the root that existed
at startup or was created while the watcher was alive. The set only grows.

OS notifications arrive on watchdog's observer threads and are handed to the
event loop through a bounded intake queue. A single worker task drains the
intake, translates each notification into an :class:`Event`, extends the
watch set when a directory appears, and publishes the event.

Overflow policy:
- intake full (worker far behind the OS): the notification is dropped, a
  warning is logged and a WatchOverflowError is offered on the error stream
- event stream full (consumer behind the worker): the worker waits
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import suppress

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from ..exceptions import (
    ConstructionError,
    WatchError,
    WatchExtendError,
    WatchOverflowError,
)
from .events import Event, EventType
from .stream import BoundedStream

logger = logging.getLogger("watchrun")

EVENT_BUFFER = 128
ERROR_BUFFER = 16
INTAKE_BUFFER = 4096

# Checked in order; the first kind that matches wins.
_TRANSLATION: tuple[tuple[str, EventType], ...] = (
    (EVENT_TYPE_CREATED, EventType.CREATE),
    (EVENT_TYPE_MODIFIED, EventType.MODIFY),
    (EVENT_TYPE_DELETED, EventType.DELETE),
    (EVENT_TYPE_MOVED, EventType.RENAME),
)


def translate(raw: FileSystemEvent) -> EventType | None:
    """Map a watchdog notification to an EventType, or None to drop it."""
    # Directory mtime changes accompany every child create/delete
    if raw.is_directory and raw.event_type == EVENT_TYPE_MODIFIED:
        return None
    for kind, event_type in _TRANSLATION:
        if raw.event_type == kind:
            return event_type
    return None


def walk_dirs(root: str) -> list[str]:
    """List ``root`` and every directory below it. Any OS error propagates."""

    def _raise(err: OSError) -> None:
        raise err

    return [dirpath for dirpath, _dirs, _files in os.walk(root, onerror=_raise)]


def _is_within(path: str, root: str) -> bool:
    try:
        return os.path.commonpath([os.path.abspath(path), os.path.abspath(root)]) == (
            os.path.abspath(root)
        )
    except ValueError:
        return False


class _IntakeHandler(FileSystemEventHandler):
    """Hands raw notifications from observer threads to the event loop."""

    def __init__(self, watcher: RecursiveWatcher, loop: asyncio.AbstractEventLoop):
        self._watcher = watcher
        self._loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        if self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(self._watcher._enqueue, event)
        except RuntimeError:
            logger.debug(f"Event loop closed; dropping {event.event_type} notification")


class RecursiveWatcher:
    """Watches a directory tree and streams :class:`Event` objects.

    Use :meth:`start` to construct one::

        watcher = await RecursiveWatcher.start("src")
        async for event in watcher.events():
            ...
        await watcher.close()
    """

    def __init__(
        self,
        root: str,
        *,
        use_polling: bool = False,
        event_buffer: int = EVENT_BUFFER,
        error_buffer: int = ERROR_BUFFER,
        intake_buffer: int = INTAKE_BUFFER,
    ) -> None:
        self._root = root
        self._use_polling = use_polling
        self._intake_buffer = intake_buffer
        self._events: BoundedStream[Event] = BoundedStream(event_buffer)
        self._errors: BoundedStream[WatchError] = BoundedStream(error_buffer)
        self._watched: set[str] = set()
        self._intake: asyncio.Queue[FileSystemEvent] | None = None
        self._observer: BaseObserver | None = None
        self._worker: asyncio.Task | None = None
        self._closing = False
        self._closed = asyncio.Event()
        self.dropped = 0

    # ── Construction ─────────────────────────────────────────

    @classmethod
    async def start(
        cls,
        root: str | os.PathLike[str],
        *,
        use_polling: bool = False,
        event_buffer: int = EVENT_BUFFER,
        error_buffer: int = ERROR_BUFFER,
        intake_buffer: int = INTAKE_BUFFER,
    ) -> RecursiveWatcher:
        """Start watching ``root`` recursively.

        Raises:
            ConstructionError: root is missing, not a directory, cannot be
                walked, or the OS watch could not be set up.
        """
        watcher = cls(
            os.fspath(root),
            use_polling=use_polling,
            event_buffer=event_buffer,
            error_buffer=error_buffer,
            intake_buffer=intake_buffer,
        )
        await watcher._open()
        return watcher

    async def _open(self) -> None:
        root = self._root
        if not os.path.exists(root):
            raise ConstructionError(f"watch root does not exist: {root}")
        if not os.path.isdir(root):
            raise ConstructionError(f"watch root is not a directory: {root}")

        loop = asyncio.get_running_loop()
        self._intake = asyncio.Queue(maxsize=self._intake_buffer)

        observer = PollingObserver() if self._use_polling else Observer()
        try:
            observer.schedule(_IntakeHandler(self, loop), root, recursive=True)
            observer.start()
        except OSError as e:
            raise ConstructionError(f"cannot watch {root}: {e}") from e

        # Walk after the observer is live so no directory slips between the two
        try:
            dirs = await asyncio.to_thread(walk_dirs, root)
        except OSError as e:
            observer.stop()
            await asyncio.to_thread(observer.join)
            raise ConstructionError(f"cannot walk {root}: {e}") from e

        self._watched.update(dirs)
        self._observer = observer
        self._worker = asyncio.create_task(self._run(), name=f"watchrun-watcher:{root}")
        logger.info(f"Watching {root} ({len(dirs)} directories)")

    # ── Public API ───────────────────────────────────────────

    @property
    def root(self) -> str:
        return self._root

    def events(self) -> BoundedStream[Event]:
        """Async iterator of events; ends after :meth:`close`."""
        return self._events

    def errors(self) -> BoundedStream[WatchError]:
        """Async iterator of non-fatal watcher errors; ends after :meth:`close`."""
        return self._errors

    def watched_dirs(self) -> list[str]:
        return sorted(self._watched)

    async def close(self) -> None:
        """Stop watching and wait for the worker to exit. Safe to call twice."""
        if self._closing:
            await self._closed.wait()
            return
        self._closing = True

        try:
            if self._worker is not None:
                self._worker.cancel()
                with suppress(asyncio.CancelledError):
                    await self._worker

            if self._observer is not None:
                self._observer.stop()
                await asyncio.to_thread(self._observer.join)
        finally:
            await self._events.close()
            await self._errors.close()
            self._closed.set()
            logger.info(f"Stopped watching {self._root}")

    # ── Worker ───────────────────────────────────────────────

    def _enqueue(self, raw: FileSystemEvent) -> None:
        """Runs on the loop thread via call_soon_threadsafe."""
        if self._closing or self._intake is None:
            return
        try:
            self._intake.put_nowait(raw)
        except asyncio.QueueFull:
            self.dropped += 1
            src = os.fsdecode(raw.src_path)
            logger.warning(f"Watcher intake full; dropping {raw.event_type} for {src}")
            self._errors.offer(
                WatchOverflowError(f"dropped {raw.event_type} notification for {src}")
            )

    async def _run(self) -> None:
        assert self._intake is not None
        try:
            while True:
                raw = await self._intake.get()
                for event in self._to_events(raw):
                    if event.type is EventType.CREATE:
                        await self._extend(event.path)
                    await self._events.put(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Watcher worker for {self._root} crashed")
            self._errors.offer(WatchError(f"watcher for {self._root} stopped: {e}"))
            # Consumers must see the end of both streams
            await self._events.close()
            await self._errors.close()

    def _to_events(self, raw: FileSystemEvent) -> list[Event]:
        event_type = translate(raw)
        if event_type is None:
            return []

        events = [Event.for_path(os.fsdecode(raw.src_path), event_type)]
        if event_type is EventType.RENAME:
            dest = os.fsdecode(getattr(raw, "dest_path", "") or "")
            if dest and _is_within(dest, self._root):
                events.append(Event.for_path(dest, EventType.CREATE))
        return events

    async def _extend(self, path: str) -> None:
        """Add a newly created directory and its subdirectories to the watch set."""
        if not os.path.isdir(path):
            return
        try:
            dirs = await asyncio.to_thread(walk_dirs, path)
        except OSError as e:
            logger.warning(f"Cannot watch new directory {path}: {e}")
            await self._errors.put(WatchExtendError(path, e))
            return

        added = [d for d in dirs if d not in self._watched]
        self._watched.update(added)
        logger.debug(f"Watch set extended with {len(added)} directories under {path}")
