"""Tests for the pipeline wiring and end-to-end behaviour."""

from __future__ import annotations

import asyncio
import io
import sys

import pytest

from watchrun.config import (
    CommandActionConfig,
    GlobalConfig,
    LogActionConfig,
    RuleConfig,
    WatchrunConfig,
)
from watchrun.exceptions import ConstructionError, ProcessError, WatchError
from watchrun.pipeline import ActionResult, Pipeline
from watchrun.watcher.events import Event, EventType
from watchrun.watcher.recursive import RecursiveWatcher


class RecordingReporter:
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.filtered: list[tuple[str, str]] = []
        self.dry_runs: list[tuple[str, str]] = []
        self.results: list[ActionResult] = []
        self.errors: list[Exception] = []

    def event(self, event: Event, rule_name: str = "") -> None:
        self.events.append((event.path, rule_name))

    def verbose(self, event: Event, reason: str) -> None:
        self.filtered.append((event.path, reason))

    def dry_run(self, rule_name: str, action_type: str) -> None:
        self.dry_runs.append((rule_name, action_type))

    def action_result(self, result: ActionResult) -> None:
        self.results.append(result)

    def watch_error(self, error: Exception) -> None:
        self.errors.append(error)


def _log_config(debounce: float = 0.02, ignore: list[str] | None = None) -> WatchrunConfig:
    return WatchrunConfig(
        global_=GlobalConfig(debounce=debounce, ignore=ignore or [".git"]),
        rules=[
            RuleConfig(
                name="Log Go changes",
                watch=["**/*.go"],
                events=["create", "modify"],
                action=LogActionConfig(format="{{.Event}} {{.Path}}"),
            )
        ],
    )


async def _eventually(check, timeout: float = 5.0) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        if check():
            return True
        await asyncio.sleep(0.02)
    return check()


class TestHandleEvent:
    @pytest.mark.asyncio
    async def test_burst_runs_action_once(self, tmp_path):
        out = io.StringIO()
        reporter = RecordingReporter()
        pipeline = Pipeline(_log_config(), tmp_path, output=out, reporter=reporter)

        for _ in range(5):
            pipeline.handle_event(Event.for_path("main.go", EventType.MODIFY))
        await asyncio.sleep(0.15)

        assert out.getvalue() == "modify main.go\n"
        assert len(reporter.events) == 5
        assert len(reporter.results) == 1
        assert reporter.results[0].ok
        assert reporter.results[0].rule_name == "Log Go changes"
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_write_after_create_reports_create(self, tmp_path):
        out = io.StringIO()
        pipeline = Pipeline(_log_config(debounce=0.05), tmp_path, output=out)

        pipeline.handle_event(Event.for_path("main.go", EventType.CREATE))
        pipeline.handle_event(Event.for_path("main.go", EventType.MODIFY))
        pipeline.handle_event(Event.for_path("main.go", EventType.MODIFY))
        await asyncio.sleep(0.2)

        assert out.getvalue() == "create main.go\n"

        # Once fired, later writes are plain modifies again
        pipeline.handle_event(Event.for_path("main.go", EventType.MODIFY))
        await asyncio.sleep(0.2)

        assert out.getvalue() == "create main.go\nmodify main.go\n"
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_different_paths_are_debounced_separately(self, tmp_path):
        out = io.StringIO()
        pipeline = Pipeline(_log_config(), tmp_path, output=out)

        pipeline.handle_event(Event.for_path("a.go", EventType.CREATE))
        pipeline.handle_event(Event.for_path("b.go", EventType.CREATE))
        await asyncio.sleep(0.15)

        assert sorted(out.getvalue().splitlines()) == ["create a.go", "create b.go"]
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_verbose_reports_filtered_events(self, tmp_path):
        reporter = RecordingReporter()
        pipeline = Pipeline(
            _log_config(), tmp_path, verbose=True, reporter=reporter, output=io.StringIO()
        )

        assert pipeline.handle_event(Event.for_path(".git/HEAD", EventType.MODIFY)) == []
        assert pipeline.handle_event(Event.for_path("README.md", EventType.MODIFY)) == []

        assert reporter.filtered == [(".git/HEAD", "ignored"), ("README.md", "no rule")]
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_rule_debounce_overrides_global(self, tmp_path):
        out = io.StringIO()
        config = WatchrunConfig(
            global_=GlobalConfig(debounce=30.0),
            rules=[
                RuleConfig(
                    name="fast",
                    watch=["*.txt"],
                    debounce=0.01,
                    action=LogActionConfig(format="{{.Name}}"),
                )
            ],
        )
        pipeline = Pipeline(config, tmp_path, output=out)

        pipeline.handle_event(Event.for_path("notes.txt", EventType.CREATE))
        await asyncio.sleep(0.1)

        assert out.getvalue() == "notes.txt\n"
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_action_failure_is_reported_not_raised(self, tmp_path):
        reporter = RecordingReporter()
        config = WatchrunConfig(
            global_=GlobalConfig(debounce=0.01),
            rules=[
                RuleConfig(
                    name="broken",
                    watch=["*"],
                    action=CommandActionConfig(
                        command="echo hi", dir=str(tmp_path / "missing")
                    ),
                )
            ],
        )
        pipeline = Pipeline(config, tmp_path, reporter=reporter, output=io.StringIO())

        pipeline.handle_event(Event.for_path("x", EventType.CREATE))
        assert await _eventually(lambda: reporter.results)

        result = reporter.results[0]
        assert not result.ok
        assert isinstance(result.error, ProcessError)
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_dry_run(self, tmp_path):
        out = io.StringIO()
        reporter = RecordingReporter()
        pipeline = Pipeline(
            _log_config(), tmp_path, dry_run=True, reporter=reporter, output=out
        )

        pipeline.handle_event(Event.for_path("main.go", EventType.CREATE))
        assert await _eventually(lambda: reporter.results)

        assert reporter.dry_runs == [("Log Go changes", "log")]
        assert out.getvalue() == ""
        await pipeline.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_actions(self, tmp_path):
        out = io.StringIO()
        pipeline = Pipeline(_log_config(debounce=0.1), tmp_path, output=out)

        pipeline.handle_event(Event.for_path("main.go", EventType.MODIFY))
        await pipeline.stop()
        await pipeline.stop()
        await asyncio.sleep(0.2)

        assert out.getvalue() == ""


class TestRun:
    @pytest.mark.asyncio
    async def test_file_change_produces_single_log_line(self, tmp_path):
        out = io.StringIO()
        reporter = RecordingReporter()
        pipeline = Pipeline(_log_config(debounce=0.05), tmp_path, output=out, reporter=reporter)

        task = asyncio.create_task(pipeline.run())
        await asyncio.wait_for(pipeline.wait_started(), timeout=5.0)

        (tmp_path / "main.go").write_text("package main\n")
        assert await _eventually(lambda: out.getvalue())
        await asyncio.sleep(0.3)

        assert out.getvalue().splitlines() == ["create main.go"]
        assert reporter.events[0] == ("main.go", "Log Go changes")

        await pipeline.stop()
        await asyncio.wait_for(task, timeout=5.0)

    @pytest.mark.asyncio
    async def test_nested_path_is_relative_to_root(self, tmp_path):
        (tmp_path / "cmd").mkdir()
        out = io.StringIO()
        pipeline = Pipeline(_log_config(), tmp_path, output=out)

        task = asyncio.create_task(pipeline.run())
        await asyncio.wait_for(pipeline.wait_started(), timeout=5.0)

        (tmp_path / "cmd" / "server.go").write_text("package cmd\n")
        assert await _eventually(lambda: "cmd/server.go" in out.getvalue())

        await pipeline.stop()
        await asyncio.wait_for(task, timeout=5.0)

    @pytest.mark.asyncio
    async def test_ignored_files_produce_nothing(self, tmp_path):
        out = io.StringIO()
        config = WatchrunConfig(
            global_=GlobalConfig(debounce=0.02, ignore=["*.tmp"]),
            rules=[
                RuleConfig(
                    name="Log all",
                    watch=["**/*"],
                    events=["create"],
                    action=LogActionConfig(format="{{.Name}}"),
                )
            ],
        )
        pipeline = Pipeline(config, tmp_path, output=out)

        task = asyncio.create_task(pipeline.run())
        await asyncio.wait_for(pipeline.wait_started(), timeout=5.0)

        (tmp_path / "cache.tmp").write_text("temp")
        (tmp_path / "keep.txt").write_text("keep")
        assert await _eventually(lambda: "keep.txt" in out.getvalue())

        assert "cache.tmp" not in out.getvalue()
        await pipeline.stop()
        await asyncio.wait_for(task, timeout=5.0)

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell commands")
    async def test_command_rule_restarts_process(self, tmp_path):
        config = WatchrunConfig(
            global_=GlobalConfig(debounce=0.02),
            rules=[
                RuleConfig(
                    name="server",
                    watch=["*.py"],
                    action=CommandActionConfig(command="sleep 30"),
                )
            ],
        )
        pipeline = Pipeline(config, tmp_path, output=io.StringIO())
        action = pipeline.actions[0]

        pipeline.handle_event(Event.for_path("app.py", EventType.MODIFY))
        assert await _eventually(lambda: action.running)
        first_pid = action.pid

        pipeline.handle_event(Event.for_path("app.py", EventType.MODIFY))
        assert await _eventually(lambda: action.running and action.pid != first_pid)

        await pipeline.stop()
        assert not action.running

    @pytest.mark.asyncio
    async def test_missing_root_raises(self, tmp_path):
        pipeline = Pipeline(_log_config(), tmp_path / "missing", output=io.StringIO())
        with pytest.raises(ConstructionError):
            await pipeline.run()

    @pytest.mark.asyncio
    async def test_run_returns_when_watcher_worker_dies(self, tmp_path, monkeypatch):
        def boom(self, raw):
            raise RuntimeError("translate failed")

        monkeypatch.setattr(RecursiveWatcher, "_to_events", boom)
        reporter = RecordingReporter()
        pipeline = Pipeline(_log_config(), tmp_path, reporter=reporter, output=io.StringIO())

        task = asyncio.create_task(pipeline.run())
        await asyncio.wait_for(pipeline.wait_started(), timeout=5.0)
        (tmp_path / "main.go").write_text("package main\n")

        await asyncio.wait_for(task, timeout=5.0)
        assert any(isinstance(e, WatchError) for e in reporter.errors)
