"""Keyed debouncing of rapid events.

Each key owns at most one pending timer. Triggering a key again before its
timer fires resets the timer and replaces the callback, so only the last
trigger of a burst ever runs. Timers live on the running asyncio loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger("watchrun")

Callback = Callable[[], Awaitable[Any] | Any]


class Debouncer:
    """Fires a callback per key only after ``delay`` seconds without new triggers."""

    def __init__(self, delay: float) -> None:
        self._delay = delay
        self._lock = threading.Lock()
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._running: set[asyncio.Future] = set()
        self._stopped = False

    @property
    def delay(self) -> float:
        return self._delay

    def trigger(self, key: str, fn: Callback) -> None:
        """Schedule ``fn`` after the default delay, resetting any pending timer for ``key``."""
        self.trigger_with_delay(key, self._delay, fn)

    def trigger_with_delay(self, key: str, delay: float, fn: Callback) -> None:
        """Like :meth:`trigger` but with a caller-supplied delay in seconds."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._stopped:
                return
            existing = self._timers.pop(key, None)
            if existing is not None:
                existing.cancel()
            self._timers[key] = loop.call_later(max(delay, 0.0), self._fire, key, fn)

    def pending(self) -> int:
        """Number of keys with a timer still waiting to fire."""
        with self._lock:
            return len(self._timers)

    def stop(self) -> None:
        """Cancel every pending timer; later triggers become no-ops."""
        with self._lock:
            self._stopped = True
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()

    async def join(self) -> None:
        """Wait for callbacks that already fired and are still running."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    def _fire(self, key: str, fn: Callback) -> None:
        with self._lock:
            if self._stopped:
                return
            self._timers.pop(key, None)

        try:
            result = fn()
        except Exception:
            logger.exception(f"Debounced callback failed for key '{key}'")
            return

        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._running.add(future)
            future.add_done_callback(lambda f: self._callback_done(key, f))

    def _callback_done(self, key: str, future: asyncio.Future) -> None:
        self._running.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"Debounced callback failed for key '{key}': {exc!r}")
