"""Tests for the polling task-list watcher."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from agentledger.logging import TRACE
from agentledger.workitems import DirectoryChange, TaskListWatcher


def touch(path: Path, content: str = "{}") -> None:
    path.write_text(content)


class TestCheckChanges:
    """Tests for synchronous change detection."""

    def test_detects_create_modify_delete(self, tmp_path: Path) -> None:
        watcher = TaskListWatcher(tmp_path)
        assert watcher.check_changes() == []

        task = tmp_path / "1.json"
        touch(task)
        assert watcher.check_changes() == [DirectoryChange(task, "created")]

        touch(task, '{"id": "1", "subject": "longer"}')
        stat = task.stat()
        os.utime(task, (stat.st_atime, stat.st_mtime + 5))
        assert watcher.check_changes() == [DirectoryChange(task, "modified")]

        task.unlink()
        assert watcher.check_changes() == [DirectoryChange(task, "deleted")]

    def test_ignores_other_files(self, tmp_path: Path) -> None:
        watcher = TaskListWatcher(tmp_path)
        touch(tmp_path / "1.json.tmp")
        touch(tmp_path / "README.md")

        assert watcher.check_changes() == []

    def test_missing_directory(self, tmp_path: Path) -> None:
        watcher = TaskListWatcher(tmp_path / "absent")
        assert watcher.check_changes() == []

    def test_changes_logged_at_trace(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        watcher = TaskListWatcher(tmp_path)
        touch(tmp_path / "1.json")

        with caplog.at_level(TRACE, logger="agentledger"):
            watcher.check_changes()
            watcher.check_changes()

        assert [r.levelno for r in caplog.records] == [TRACE]
        assert caplog.records[0].getMessage().startswith("1 task file changes")

    def test_minimum_interval(self, tmp_path: Path) -> None:
        assert TaskListWatcher(tmp_path, poll_interval=0).poll_interval == 0.01


class TestPolling:
    """Tests for the background polling loop."""

    async def test_async_callback_receives_changes(self, tmp_path: Path) -> None:
        touch(tmp_path / "1.json")
        received: list[list[DirectoryChange]] = []

        async def on_change(changes: list[DirectoryChange]) -> None:
            received.append(changes)

        watcher = TaskListWatcher(tmp_path, poll_interval=0.02)
        watcher.start(on_change)
        assert watcher.is_running()
        try:
            touch(tmp_path / "2.json")
            for _ in range(100):
                if received:
                    break
                await asyncio.sleep(0.02)
        finally:
            watcher.stop()

        # The pre-existing file is part of the baseline
        assert received[0] == [DirectoryChange(tmp_path / "2.json", "created")]
        assert not watcher.is_running()

    async def test_start_twice_is_noop(self, tmp_path: Path) -> None:
        watcher = TaskListWatcher(tmp_path, poll_interval=0.02)
        watcher.start(lambda changes: None)
        first_task = watcher._task
        watcher.start(lambda changes: None)
        try:
            assert watcher._task is first_task
        finally:
            watcher.stop()
