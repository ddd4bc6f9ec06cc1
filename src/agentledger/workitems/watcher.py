"""Polling watcher for a task-list directory.

Polling is preferred over native file-system notifications for
cross-platform reliability. Each cycle compares the (mtime, size) of every
``*.json`` file in the directory with the previous cycle and reports
created, modified and deleted files.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from agentledger.logging import TRACE, get_logger

log = get_logger("workitems.watcher")

DEFAULT_POLL_INTERVAL = 1.0
TASK_FILE_SUFFIX = ".json"

FileState = tuple[float, int]  # (mtime, size)


@dataclass
class DirectoryChange:
    """A detected change to one task file."""

    path: Path
    change_type: str  # "created", "modified", "deleted"


ChangeCallback = Callable[[list[DirectoryChange]], Union[Awaitable[None], None]]


class TaskListWatcher:
    """Watches one directory for task-file changes.

    Example:
        watcher = TaskListWatcher(Path("~/.agentledger/tasks/list-1"), poll_interval=0.5)

        def on_change(changes: list[DirectoryChange]) -> None:
            print([c.path.name for c in changes])

        watcher.start(on_change)
        ...
        watcher.stop()
    """

    def __init__(self, directory: Path, poll_interval: float = DEFAULT_POLL_INTERVAL) -> None:
        """Initialize the watcher.

        Args:
            directory: Directory to scan
            poll_interval: Seconds between scans (minimum 0.01)
        """
        self._directory = directory
        self._poll_interval = max(0.01, poll_interval)
        self._snapshot: dict[Path, FileState] = {}
        self._task: asyncio.Task[None] | None = None

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _scan(self) -> dict[Path, FileState]:
        states: dict[Path, FileState] = {}
        try:
            entries = list(self._directory.iterdir())
        except FileNotFoundError:
            return states
        except OSError as e:
            log.warning("Error scanning %s: %s", self._directory, e)
            return states

        for path in entries:
            if path.suffix != TASK_FILE_SUFFIX:
                continue
            try:
                stat = path.stat()
            except OSError:
                # Removed between listing and stat
                continue
            states[path] = (stat.st_mtime, stat.st_size)
        return states

    def check_changes(self) -> list[DirectoryChange]:
        """Compare the directory with the previous scan.

        Synchronous; safe to call directly without starting the loop.
        """
        current = self._scan()
        changes: list[DirectoryChange] = []

        for path, state in current.items():
            previous = self._snapshot.get(path)
            if previous is None:
                changes.append(DirectoryChange(path, "created"))
            elif previous != state:
                changes.append(DirectoryChange(path, "modified"))

        for path in self._snapshot:
            if path not in current:
                changes.append(DirectoryChange(path, "deleted"))

        self._snapshot = current
        if changes:
            log.log(TRACE, "%d task file changes in %s", len(changes), self._directory)
        return changes

    def start(self, callback: ChangeCallback) -> None:
        """Start polling. Must be called from within an async context."""
        if self.is_running():
            log.warning("TaskListWatcher already running for %s", self._directory)
            return

        # Baseline so pre-existing files are not reported as created
        self._snapshot = self._scan()
        self._task = asyncio.create_task(self._poll_loop(callback))
        log.debug("Watching %s (interval=%.2fs)", self._directory, self._poll_interval)

    async def _poll_loop(self, callback: ChangeCallback) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)

            changes = self.check_changes()
            if not changes:
                continue

            log.debug("Task files changed: %s", [c.path.name for c in changes])
            try:
                result = callback(changes)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                log.exception("Error in task-list change callback")

    def stop(self) -> None:
        """Stop polling."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
            log.debug("Stopped watching %s", self._directory)
