"""Command action — runs a shell command per event, one at a time.

Every execution first kills the process started by the previous execution
(its whole process group on POSIX) and waits for it and its output to
finish. Only then is the new command started, so a long-running command
like a dev server is restarted rather than duplicated.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
from typing import TextIO

from ..exceptions import ProcessError
from ..template import TemplateData, render_template
from ..watcher.events import Event
from .base import Action, write_to_sink

logger = logging.getLogger("watchrun")

_POSIX = os.name == "posix"

# How long to wait for a killed process's output to drain before giving up
DRAIN_TIMEOUT = 1.0


class CommandAction(Action):
    """Run ``command`` through the platform shell when triggered.

    Args:
        command: Shell command template, e.g. ``"go test ./{{.Dir}}/..."``.
        dir: Working directory for the command (current directory if empty).
        dry_run: Kill the previous process but never start a new one.
        output: Sink for the child's combined stdout and stderr.
    """

    kind = "command"

    def __init__(
        self,
        command: str,
        dir: str = "",
        *,
        dry_run: bool = False,
        output: TextIO | None = None,
        drain_timeout: float = DRAIN_TIMEOUT,
    ):
        super().__init__(dry_run=dry_run, output=output)
        self._command = command
        self._dir = dir
        self._drain_timeout = drain_timeout
        self._lock = asyncio.Lock()
        self._proc: asyncio.subprocess.Process | None = None
        self._pump: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    # ── Public API ───────────────────────────────────────────

    async def execute(self, event: Event) -> None:
        """Restart the command for ``event``. Does not wait for it to finish."""
        rendered = render_template(self._command, TemplateData.from_event(event))

        async with self._lock:
            await self._kill_previous()

            if self._dry_run:
                logger.info(f"Dry run, not starting: {rendered}")
                return

            try:
                proc = await asyncio.create_subprocess_shell(
                    rendered,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                    cwd=self._dir or None,
                    start_new_session=_POSIX,
                )
            except OSError as e:
                raise ProcessError(f"cannot start command '{rendered}': {e}") from e

            self._proc = proc
            self._pump = asyncio.create_task(
                self._forward_output(proc), name=f"watchrun-output:{proc.pid}"
            )
            logger.info(f"Started command (pid {proc.pid}): {rendered}")

    async def wait(self) -> int | None:
        """Wait for the current process and its output; returns its exit code."""
        proc, pump = self._proc, self._pump
        if proc is None:
            return None
        code = await proc.wait()
        if pump is not None:
            await asyncio.shield(pump)
        return code

    async def stop(self) -> None:
        """Kill the running process, if any."""
        async with self._lock:
            await self._kill_previous()

    async def close(self) -> None:
        await self.stop()

    # ── Internal helpers ─────────────────────────────────────

    async def _kill_previous(self) -> None:
        proc, pump = self._proc, self._pump
        self._proc = None
        self._pump = None
        if proc is None:
            return

        if proc.returncode is None:
            logger.debug(f"Killing previous command (pid {proc.pid})")
            self._signal_kill(proc)
        await proc.wait()

        if pump is not None:
            try:
                await asyncio.wait_for(pump, timeout=self._drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Output of pid {proc.pid} still open after kill; abandoning it"
                )

    @staticmethod
    def _signal_kill(proc: asyncio.subprocess.Process) -> None:
        try:
            if _POSIX:
                # start_new_session made the child a group leader
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass
        except PermissionError:
            # macOS refuses killpg on a group whose leader is a zombie
            try:
                proc.kill()
            except ProcessLookupError:
                pass

    async def _forward_output(self, proc: asyncio.subprocess.Process) -> None:
        assert proc.stdout is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = await proc.stdout.read(4096)
                if not chunk:
                    break
                text = decoder.decode(chunk)
                if text:
                    write_to_sink(self.output, text)
            tail = decoder.decode(b"", final=True)
            if tail:
                write_to_sink(self.output, tail)
        except (OSError, ValueError) as e:
            logger.warning(f"Stopped forwarding output of pid {proc.pid}: {e}")
            return

        code = await proc.wait()
        logger.debug(f"Command (pid {proc.pid}) exited with code {code}")
