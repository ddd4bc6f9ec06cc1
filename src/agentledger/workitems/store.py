"""File-backed store of dependency-linked work items.

Layout on disk:

    <base_path>/<task_list_id>/<id>.json

Each work item is one JSON file, so several processes can share a list.
Edge updates touch several files one after another and are not atomic as a
group: a crash between two writes can leave a one-sided edge, and concurrent
writers to the same file follow last-writer-wins.
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from agentledger.config.paths import get_default_tasks_dir
from agentledger.logging import get_logger
from agentledger.workitems.active_form import derive_active_form
from agentledger.workitems.schema import (
    WorkItem,
    WorkItemStats,
    WorkItemStatus,
)
from agentledger.workitems.watcher import (
    DEFAULT_POLL_INTERVAL,
    TASK_FILE_SUFFIX,
    TaskListWatcher,
)

if TYPE_CHECKING:
    from agentledger.config.schema import WorkItemConfig
    from agentledger.workitems.schema import WorkItemCreate, WorkItemUpdate
    from agentledger.workitems.watcher import DirectoryChange

log = get_logger("workitems")

ChangeListener = Callable[[list[WorkItem]], None]


class WorkItemNotFoundError(KeyError):
    """Raised when updating a work item that does not exist."""

    def __init__(self, task_id: str) -> None:
        super().__init__(task_id)
        self.task_id = task_id

    def __str__(self) -> str:
        return f"Task not found: {self.task_id}"


class WorkItemStore:
    """Reads and writes the work items of one task list.

    Ids are decimal strings allocated from a counter that is recovered from
    the highest id on disk when the store initializes, so ids keep increasing
    across restarts without a separate counter file.

    Status changes are not validated; any status may follow any other.
    """

    def __init__(
        self,
        task_list_id: str,
        base_path: str | Path | None = None,
        on_change: ChangeListener | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize the store.

        Args:
            task_list_id: Name of the task list (directory under base_path)
            base_path: Parent directory of task lists; defaults to ~/.agentledger/tasks
            on_change: Receives the full list after external changes (see watch())
            poll_interval: Seconds between directory scans while watching
        """
        self._task_list_id = task_list_id
        self._base_path = (
            Path(base_path).expanduser() if base_path is not None else get_default_tasks_dir()
        )
        self._on_change = on_change
        self._poll_interval = poll_interval
        self._watcher: TaskListWatcher | None = None
        self._next_id = 1
        self._initialized = False

    @classmethod
    def from_config(
        cls,
        task_list_id: str,
        config: WorkItemConfig,
        on_change: ChangeListener | None = None,
    ) -> WorkItemStore:
        return cls(
            task_list_id,
            base_path=config.base_path,
            on_change=on_change,
            poll_interval=config.poll_interval,
        )

    @property
    def task_list_id(self) -> str:
        return self._task_list_id

    @property
    def task_list_path(self) -> Path:
        return self._base_path / self._task_list_id

    def init(self) -> None:
        """Create the list directory and recover the id counter. Idempotent."""
        if self._initialized:
            return

        try:
            self.task_list_path.mkdir(parents=True, exist_ok=True)
            max_id = max((item.numeric_id for item in self._read_all()), default=0)
        except OSError:
            log.exception("Failed to initialize task list %s", self.task_list_path)
            raise

        self._next_id = max_id + 1
        self._initialized = True
        log.debug("Initialized %s (next id %d)", self.task_list_path, self._next_id)

    # =========================================================================
    # CRUD
    # =========================================================================

    def create(self, item: WorkItemCreate) -> WorkItem:
        """Create a pending work item with the next free id."""
        self.init()

        task = WorkItem(
            id=str(self._next_id),
            subject=item.subject,
            description=item.description,
            active_form=(
                item.active_form
                if item.active_form is not None
                else derive_active_form(item.subject)
            ),
            status=WorkItemStatus.PENDING,
            metadata=dict(item.metadata) if item.metadata is not None else None,
        )
        self._next_id += 1

        self._save(task)
        log.debug("Created task %s: %s", task.id, task.subject)
        return task

    def get(self, task_id: str) -> WorkItem | None:
        """Read a work item; None if its file does not exist."""
        self.init()
        return self._read(self._task_path(task_id))

    def list(self) -> list[WorkItem]:
        """All readable work items sorted by numeric id."""
        self.init()
        return self._read_all()

    def update(self, task_id: str, patch: WorkItemUpdate) -> WorkItem:
        """Apply a patch to a work item.

        Edges added through ``add_blocks``/``add_blocked_by`` are mirrored into
        the referenced items' files. Completing an item removes it from the
        ``blocked_by`` list of every item it blocks.

        Raises:
            WorkItemNotFoundError: If the item does not exist
        """
        self.init()

        task = self.get(task_id)
        if task is None:
            raise WorkItemNotFoundError(task_id)

        if patch.status is not None:
            task.status = patch.status
        if patch.subject is not None:
            task.subject = patch.subject
        if patch.description is not None:
            task.description = patch.description
        if patch.active_form is not None:
            task.active_form = patch.active_form
        if patch.owner is not None:
            task.owner = patch.owner

        for blocked_id in patch.add_blocks or []:
            if blocked_id not in task.blocks:
                task.blocks.append(blocked_id)
            blocked = self.get(blocked_id)
            if blocked is not None and task_id not in blocked.blocked_by:
                blocked.blocked_by.append(task_id)
                self._save(blocked)

        for blocker_id in patch.add_blocked_by or []:
            if blocker_id not in task.blocked_by:
                task.blocked_by.append(blocker_id)
            blocker = self.get(blocker_id)
            if blocker is not None and task_id not in blocker.blocks:
                blocker.blocks.append(task_id)
                self._save(blocker)

        if patch.metadata is not None:
            task.metadata = merge_metadata(task.metadata, patch.metadata)

        if patch.status is WorkItemStatus.COMPLETED:
            for blocked_id in task.blocks:
                self._unlink(blocked_id, blocked_by=task_id)

        self._save(task)
        return task

    def delete(self, task_id: str) -> bool:
        """Delete a work item and remove it from its neighbors' edges.

        Returns:
            False if the item does not exist
        """
        self.init()

        task = self.get(task_id)
        if task is None:
            return False

        for blocked_id in task.blocks:
            self._unlink(blocked_id, blocked_by=task_id)
        for blocker_id in task.blocked_by:
            self._unlink(blocker_id, blocks=task_id)

        try:
            self._task_path(task_id).unlink()
        except FileNotFoundError:
            return False

        log.debug("Deleted task %s", task_id)
        return True

    def get_stats(self) -> WorkItemStats:
        tasks = self.list()
        return WorkItemStats(
            total=len(tasks),
            pending=sum(1 for t in tasks if t.status is WorkItemStatus.PENDING),
            in_progress=sum(1 for t in tasks if t.status is WorkItemStatus.IN_PROGRESS),
            completed=sum(1 for t in tasks if t.status is WorkItemStatus.COMPLETED),
            blocked=sum(1 for t in tasks if t.is_blocked),
        )

    # =========================================================================
    # Watching
    # =========================================================================

    async def watch(self) -> None:
        """Deliver the full list to ``on_change`` whenever a task file changes.

        Picks up writes from other processes sharing the directory. Must be
        called from within an async context.
        """
        if self._watcher is not None:
            return
        self.init()

        self._watcher = TaskListWatcher(self.task_list_path, self._poll_interval)
        self._watcher.start(self._handle_changes)

    def _handle_changes(self, changes: list[DirectoryChange]) -> None:
        if self._on_change is None:
            return
        try:
            tasks = self.list()
        except OSError:
            log.exception("Error refreshing tasks in %s", self.task_list_path)
            return
        self._on_change(tasks)

    def close(self) -> None:
        """Stop watching for changes."""
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    # =========================================================================
    # File helpers
    # =========================================================================

    def _task_path(self, task_id: str) -> Path:
        return self.task_list_path / f"{task_id}{TASK_FILE_SUFFIX}"

    def _read(self, path: Path) -> WorkItem | None:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        return WorkItem.from_dict(data)

    def _read_all(self) -> list[WorkItem]:
        try:
            paths = sorted(self.task_list_path.glob(f"*{TASK_FILE_SUFFIX}"))
        except FileNotFoundError:
            return []

        tasks: list[WorkItem] = []
        for path in paths:
            try:
                task = self._read(path)
            except (OSError, ValueError, KeyError, TypeError):
                # Skip invalid files
                continue
            if task is not None:
                tasks.append(task)

        tasks.sort(key=lambda t: t.numeric_id)
        return tasks

    def _save(self, task: WorkItem) -> None:
        path = self._task_path(task.id)
        temp_path = path.with_name(path.name + ".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(task.to_dict(), f, indent=2)
            os.replace(temp_path, path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def _unlink(self, task_id: str, *, blocks: str | None = None, blocked_by: str | None = None) -> None:
        """Remove one id from a neighbor's edge list and rewrite it."""
        neighbor = self.get(task_id)
        if neighbor is None:
            return
        if blocks is not None:
            neighbor.blocks = [i for i in neighbor.blocks if i != blocks]
        if blocked_by is not None:
            neighbor.blocked_by = [i for i in neighbor.blocked_by if i != blocked_by]
        self._save(neighbor)


def merge_metadata(current: dict[str, Any] | None, patch: dict[str, Any]) -> dict[str, Any]:
    """Shallow-merge ``patch`` into ``current``; None values delete keys."""
    merged = dict(current or {})
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged
