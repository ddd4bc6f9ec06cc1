"""Durable snapshots of the subagent registry.

The snapshot lives in a single JSON file:

    {"version": 1, "tasks": [...], "lastUpdated": <epoch ms>}

Writes go to ``<path>.tmp`` and are moved into place with ``os.replace`` so a
reader never sees a half-written snapshot. A file lock on ``<path>.lock``
serializes writers from different processes sharing the same path.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Collection
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from filelock import FileLock

from agentledger.config.paths import get_default_state_path
from agentledger.logging import get_logger
from agentledger.subagents.schema import (
    STATE_VERSION,
    SubagentEventType,
    SubagentStatus,
    now_ms,
)

if TYPE_CHECKING:
    from agentledger.config.schema import PersistenceConfig
    from agentledger.subagents.registry import SubagentRegistry
    from agentledger.subagents.schema import SubagentStats, TrackedSubagent

log = get_logger("persistence")

DEFAULT_AUTO_SAVE_INTERVAL = 30.0
DEFAULT_MAX_TASK_AGE_MS = 24 * 60 * 60 * 1000
LOCK_TIMEOUT = 10.0

# Events that change what a snapshot would contain
_DIRTY_EVENTS = (
    SubagentEventType.STARTED,
    SubagentEventType.COMPLETED,
    SubagentEventType.FAILED,
    SubagentEventType.CANCELLED,
    SubagentEventType.STOPPED,
)


@dataclass
class TaskFilter:
    """Predicates for PersistenceManager.get_all_tasks(); unset fields match all."""

    status: Collection[SubagentStatus] | None = None
    session_id: str | None = None
    run_in_background: bool | None = None
    subagent_type: str | None = None
    newer_than: int | None = None  # created_at strictly greater (epoch ms)
    older_than: int | None = None  # created_at strictly less (epoch ms)

    def matches(self, task: TrackedSubagent) -> bool:
        if self.status is not None and task.status not in self.status:
            return False
        if self.session_id is not None and task.parent_session_id != self.session_id:
            return False
        if self.run_in_background is not None and task.run_in_background != self.run_in_background:
            return False
        if self.subagent_type is not None and task.subagent_type != self.subagent_type:
            return False
        if self.newer_than is not None and not task.created_at > self.newer_than:
            return False
        if self.older_than is not None and not task.created_at < self.older_than:
            return False
        return True


class PersistenceManager:
    """Persists a SubagentRegistry across process restarts.

    The registry stays the only owner of subagent data. This class listens to
    its lifecycle events to set a dirty flag, and an auto-save loop flushes
    the snapshot when the flag is set. The flag is cleared before each write,
    so a transition that lands while a write is in flight re-dirties the
    state and is picked up by the next tick.

    Example:
        ```python
        registry = SubagentRegistry()
        async with PersistenceManager(registry, persistence_path=path) as manager:
            await manager.load_state()
            ...
        ```
    """

    def __init__(
        self,
        registry: SubagentRegistry,
        *,
        persistence_path: str | Path | None = None,
        auto_save: bool = True,
        auto_save_interval: float = DEFAULT_AUTO_SAVE_INTERVAL,
        max_task_age_ms: int = DEFAULT_MAX_TASK_AGE_MS,
    ) -> None:
        """Initialize the manager and subscribe to the registry's events.

        Args:
            registry: Registry to snapshot
            persistence_path: Snapshot file; defaults to ~/.agentledger/task-state.json
            auto_save: Whether start() launches the periodic save loop
            auto_save_interval: Seconds between dirty checks
            max_task_age_ms: Retention window applied on load and cleanup
        """
        self._registry = registry
        self._path = (
            Path(persistence_path).expanduser()
            if persistence_path is not None
            else get_default_state_path()
        )
        self._auto_save = auto_save
        self._auto_save_interval = auto_save_interval
        self._max_task_age_ms = max_task_age_ms

        self._dirty = False
        self._task: asyncio.Task[None] | None = None

        for event in _DIRTY_EVENTS:
            registry.add_event_listener(event, self._mark_dirty)

    @classmethod
    def from_config(
        cls, registry: SubagentRegistry, config: PersistenceConfig
    ) -> PersistenceManager:
        return cls(
            registry,
            persistence_path=config.path,
            auto_save=config.auto_save,
            auto_save_interval=config.auto_save_interval,
            max_task_age_ms=config.max_task_age_ms,
        )

    @property
    def registry(self) -> SubagentRegistry:
        return self._registry

    @property
    def persistence_path(self) -> Path:
        return self._path

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def _mark_dirty(self, subagent: TrackedSubagent, data: Any = None) -> None:
        self._dirty = True

    # =========================================================================
    # Auto-save loop
    # =========================================================================

    def start(self) -> None:
        """Start the periodic save loop.

        Must be called from within an async context. No-op when auto-save is
        disabled or the loop is already running.
        """
        if not self._auto_save or self._task is not None:
            return
        self._task = asyncio.create_task(self._auto_save_loop())
        log.debug("Auto-save started (interval=%.1fs)", self._auto_save_interval)

    async def _auto_save_loop(self) -> None:
        while True:
            await asyncio.sleep(self._auto_save_interval)
            try:
                await self.save_state()
            except Exception:
                log.exception("Auto-save failed")

    async def dispose(self) -> None:
        """Stop the save loop and flush pending changes. Never raises."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception:
                log.exception("Auto-save loop ended with an error")
            self._task = None

        try:
            await self.save_state()
        except Exception:
            log.exception("Failed to save on dispose")

    async def __aenter__(self) -> PersistenceManager:
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.dispose()

    # =========================================================================
    # Save / load
    # =========================================================================

    async def save_state(self) -> None:
        """Write a snapshot if anything changed since the last successful save.

        Failures are logged and leave the state dirty for the next attempt.
        """
        if not self._dirty:
            return

        # Cleared before the write: mutations during the write re-dirty
        self._dirty = False

        try:
            state = self._registry.export_state()
            payload = json.dumps(state, indent=2, default=str)
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._write_snapshot, payload)
        except Exception:
            self._dirty = True
            log.exception("Failed to save state to %s", self._path)
            return

        log.debug("Saved %d tasks to %s", len(state["tasks"]), self._path)

    def _write_snapshot(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_name(self._path.name + ".tmp")
        lock = FileLock(self._path.with_name(self._path.name + ".lock"), timeout=LOCK_TIMEOUT)

        with lock:
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_path, self._path)
            except BaseException:
                if temp_path.exists():
                    temp_path.unlink()
                raise

    async def force_save(self) -> None:
        """Save immediately regardless of the dirty flag."""
        self._dirty = True
        await self.save_state()

    async def load_state(self) -> None:
        """Import the snapshot from disk into the registry.

        Tasks created before the retention cutoff are dropped unless they are
        still marked running. A missing, unreadable, malformed or foreign-version
        file leaves the registry as it was.
        """
        if not self._path.exists():
            return

        try:
            with open(self._path, encoding="utf-8") as f:
                state = json.load(f)
        except (OSError, ValueError):
            log.exception("Failed to load persisted state from %s", self._path)
            return

        if not isinstance(state, dict) or state.get("version") != STATE_VERSION:
            version = state.get("version") if isinstance(state, dict) else None
            log.error("Unknown state version: %s, skipping load", version)
            return

        cutoff = now_ms() - self._max_task_age_ms
        try:
            tasks = [
                task
                for task in state.get("tasks") or []
                if task.get("createdAt", 0) > cutoff
                or task.get("status") == SubagentStatus.RUNNING.value
            ]
            self._registry.import_state({**state, "tasks": tasks})
        except Exception:
            log.exception("Malformed snapshot in %s, skipping load", self._path)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_all_tasks(self, task_filter: TaskFilter | None = None) -> list[TrackedSubagent]:
        """All tracked tasks matching the filter, newest first."""
        tasks = self._registry.get_all_subagents()
        if task_filter is not None:
            tasks = [t for t in tasks if task_filter.matches(t)]
        tasks.sort(key=lambda t: t.created_at, reverse=True)
        return tasks

    def get_resumable_tasks(self) -> list[TrackedSubagent]:
        return self._registry.get_resumable_tasks()

    def get_task(self, task_id: str) -> TrackedSubagent | None:
        return self._registry.get_subagent(task_id)

    def get_task_by_agent_id(self, agent_id: str) -> TrackedSubagent | None:
        return self._registry.find_by_agent_id(agent_id)

    def get_stats(self) -> SubagentStats:
        return self._registry.get_stats()

    def get_task_output(self, task_id: str) -> str | None:
        """Contents of a task's output file, or None when unavailable."""
        task = self._registry.get_subagent(task_id)
        if task is None or not task.output_file:
            return None

        try:
            return Path(task.output_file).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log.error("Failed to read output file for task %s: %s", task_id, e)
            return None

    def get_task_output_tail(self, task_id: str, lines: int) -> str | None:
        """Last ``lines`` lines of a task's output file.

        A non-positive ``lines`` means no tail: the whole output is returned.
        """
        content = self.get_task_output(task_id)
        if content is None or lines <= 0:
            return content
        return "\n".join(content.split("\n")[-lines:])

    # =========================================================================
    # Commands
    # =========================================================================

    async def cancel_task(self, task_id: str) -> bool:
        """Cancel a running task and persist the change immediately.

        Returns:
            False if the task is unknown or not running
        """
        task = self._registry.get_subagent(task_id)
        if task is None or task.status is not SubagentStatus.RUNNING:
            return False

        await self._registry.cancel_subagent(task_id)
        await self.force_save()
        return True

    async def cleanup(self) -> int:
        """Drop finished tasks older than the retention window and persist."""
        removed = self._registry.cleanup(self._max_task_age_ms)
        if removed > 0:
            await self.force_save()
        return removed
