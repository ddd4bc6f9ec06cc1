"""Tests for subagent snapshot persistence."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path

import pytest

from agentledger.config import PersistenceConfig
from agentledger.persistence import PersistenceManager, TaskFilter
from agentledger.subagents import (
    STATE_VERSION,
    SubagentRegistry,
    SubagentStatus,
    TaskNotification,
    TaskToolInput,
)
from agentledger.subagents.schema import now_ms


def make_input(subagent_type: str = "Explore", **kwargs) -> TaskToolInput:
    return TaskToolInput(description="Search", prompt="Find it", subagent_type=subagent_type, **kwargs)


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "task-state.json"


@pytest.fixture
def manager(registry: SubagentRegistry, state_path: Path) -> PersistenceManager:
    return PersistenceManager(registry, persistence_path=state_path, auto_save=False)


def write_snapshot(path: Path, tasks: list[dict], version: int = STATE_VERSION) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"version": version, "tasks": tasks, "lastUpdated": now_ms()}))


def task_record(task_id: str, created_at: int, status: str = "completed") -> dict:
    return {
        "id": task_id,
        "parentSessionId": "sess-1",
        "subagentType": "Explore",
        "description": "d",
        "prompt": "p",
        "status": status,
        "createdAt": created_at,
        "runInBackground": False,
    }


class TestDirtyTracking:
    """Tests for the dirty flag driven by registry events."""

    async def test_lifecycle_events_mark_dirty(
        self, registry: SubagentRegistry, manager: PersistenceManager
    ) -> None:
        registry.track_subagent("toolu_1", "sess-1", make_input())
        assert manager.is_dirty is False

        await registry.start_subagent("toolu_1")
        assert manager.is_dirty is True

    async def test_progress_does_not_mark_dirty(
        self, registry: SubagentRegistry, manager: PersistenceManager
    ) -> None:
        registry.track_subagent("toolu_1", "sess-1", make_input())
        await registry.start_subagent("toolu_1")
        await manager.save_state()

        await registry.update_progress("toolu_1", {"step": 1})

        assert manager.is_dirty is False

    async def test_save_skipped_when_clean(self, manager: PersistenceManager, state_path: Path) -> None:
        await manager.save_state()
        assert not state_path.exists()

    async def test_failed_write_stays_dirty(
        self,
        registry: SubagentRegistry,
        manager: PersistenceManager,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        registry.track_subagent("toolu_1", "sess-1", make_input())
        await registry.start_subagent("toolu_1")

        def fail(payload: str) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(manager, "_write_snapshot", fail)
        with caplog.at_level(logging.ERROR, logger="agentledger"):
            await manager.save_state()

        assert manager.is_dirty is True
        assert any("Failed to save state" in r.getMessage() for r in caplog.records)

        monkeypatch.undo()
        await manager.save_state()

        assert manager.is_dirty is False
        assert manager.persistence_path.exists()

    async def test_transition_during_write_stays_dirty(
        self,
        registry: SubagentRegistry,
        manager: PersistenceManager,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        registry.track_subagent("toolu_1", "sess-1", make_input())
        await registry.start_subagent("toolu_1")

        entered = threading.Event()
        release = threading.Event()
        written = manager._write_snapshot

        def blocking_write(payload: str) -> None:
            entered.set()
            release.wait(timeout=5)
            written(payload)

        monkeypatch.setattr(manager, "_write_snapshot", blocking_write)

        save = asyncio.create_task(manager.save_state())
        await asyncio.to_thread(entered.wait, 5)
        assert manager.is_dirty is False

        await registry.complete_subagent("toolu_1", result="done")
        release.set()
        await save

        assert manager.is_dirty is True
        data = json.loads(manager.persistence_path.read_text())
        assert data["tasks"][0]["status"] == "running"

        await manager.save_state()
        data = json.loads(manager.persistence_path.read_text())
        assert data["tasks"][0]["status"] == "completed"

    async def test_force_save_writes_clean_state(
        self, manager: PersistenceManager, state_path: Path
    ) -> None:
        await manager.force_save()

        data = json.loads(state_path.read_text())
        assert data["version"] == STATE_VERSION
        assert data["tasks"] == []
        assert isinstance(data["lastUpdated"], int)


class TestSaveAndLoad:
    """Tests for the on-disk snapshot round trip."""

    async def test_round_trip_through_disk(
        self, registry: SubagentRegistry, manager: PersistenceManager, state_path: Path
    ) -> None:
        registry.track_subagent("toolu_1", "sess-1", make_input("Plan"))
        registry.track_subagent("toolu_2", "sess-1", make_input(run_in_background=True))
        await registry.start_subagent("toolu_1")
        await registry.complete_subagent("toolu_1", result="done", agent_id="a-1")
        await registry.start_subagent("toolu_2")
        await manager.save_state()

        assert not state_path.with_name(state_path.name + ".tmp").exists()

        restored = SubagentRegistry()
        loader = PersistenceManager(restored, persistence_path=state_path, auto_save=False)
        await loader.load_state()

        assert {s.id for s in restored.get_all_subagents()} == {"toolu_1", "toolu_2"}
        assert restored.get_subagent("toolu_1").status is SubagentStatus.COMPLETED
        assert restored.get_subagent("toolu_2").status is SubagentStatus.RUNNING
        assert loader.get_task_by_agent_id("a-1").id == "toolu_1"

    async def test_load_missing_file_is_noop(self, registry: SubagentRegistry, manager: PersistenceManager) -> None:
        await manager.load_state()
        assert registry.get_all_subagents() == []

    async def test_load_drops_expired_tasks(
        self, registry: SubagentRegistry, state_path: Path
    ) -> None:
        now = now_ms()
        write_snapshot(
            state_path,
            [
                task_record("fresh", now - 1_000),
                task_record("stale", now - 100_000),
                task_record("stale-running", now - 100_000, status="running"),
            ],
        )
        manager = PersistenceManager(
            registry, persistence_path=state_path, auto_save=False, max_task_age_ms=10_000
        )

        await manager.load_state()

        assert {s.id for s in registry.get_all_subagents()} == {"fresh", "stale-running"}

    async def test_load_rejects_unknown_version(
        self, registry: SubagentRegistry, manager: PersistenceManager, state_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        write_snapshot(state_path, [task_record("x", now_ms())], version=99)

        with caplog.at_level(logging.ERROR, logger="agentledger"):
            await manager.load_state()

        assert registry.get_all_subagents() == []
        assert any("99" in r.getMessage() for r in caplog.records)

    async def test_load_invalid_json(
        self, registry: SubagentRegistry, manager: PersistenceManager, state_path: Path
    ) -> None:
        state_path.parent.mkdir(parents=True, exist_ok=True)
        state_path.write_text("{not json")

        await manager.load_state()

        assert registry.get_all_subagents() == []

    @pytest.mark.parametrize(
        "tasks",
        [
            None,
            ["not-a-task"],
            [{"id": "x", "createdAt": "yesterday", "status": "completed"}],
        ],
        ids=["null-tasks", "non-dict-entry", "non-numeric-created-at"],
    )
    async def test_load_malformed_snapshot_is_skipped(
        self,
        registry: SubagentRegistry,
        manager: PersistenceManager,
        state_path: Path,
        tasks: object,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        registry.track_subagent("existing", "sess-1", make_input())
        state_path.parent.mkdir(parents=True, exist_ok=True)
        state_path.write_text(json.dumps({"version": STATE_VERSION, "tasks": tasks, "lastUpdated": 0}))

        with caplog.at_level(logging.ERROR, logger="agentledger"):
            await manager.load_state()

        assert [s.id for s in registry.get_all_subagents()] == ["existing"]

    async def test_load_with_one_bad_entry_imports_nothing(
        self, registry: SubagentRegistry, manager: PersistenceManager, state_path: Path
    ) -> None:
        registry.track_subagent("a", "sess-old", make_input())
        bad = {"id": "b", "createdAt": now_ms(), "status": "completed"}
        write_snapshot(state_path, [task_record("a", now_ms()), bad])

        await manager.load_state()

        assert [s.id for s in registry.get_all_subagents()] == ["a"]
        assert [s.id for s in registry.get_session_subagents("sess-old")] == ["a"]
        assert registry.get_session_subagents("sess-1") == []

    async def test_from_config(self, registry: SubagentRegistry, state_path: Path) -> None:
        config = PersistenceConfig(path=str(state_path), auto_save=False, max_task_age_ms=5)
        manager = PersistenceManager.from_config(registry, config)

        assert manager.persistence_path == state_path
        assert manager.registry is registry


class TestAutoSave:
    """Tests for the periodic save loop."""

    async def test_loop_flushes_dirty_state(self, registry: SubagentRegistry, state_path: Path) -> None:
        manager = PersistenceManager(registry, persistence_path=state_path, auto_save_interval=0.01)
        manager.start()
        try:
            registry.track_subagent("toolu_1", "sess-1", make_input())
            await registry.start_subagent("toolu_1")
            for _ in range(100):
                if state_path.exists():
                    break
                await asyncio.sleep(0.01)
        finally:
            await manager.dispose()

        data = json.loads(state_path.read_text())
        assert [t["id"] for t in data["tasks"]] == ["toolu_1"]

    async def test_context_manager_saves_on_exit(
        self, registry: SubagentRegistry, state_path: Path
    ) -> None:
        async with PersistenceManager(registry, persistence_path=state_path, auto_save_interval=60) as manager:
            registry.track_subagent("toolu_1", "sess-1", make_input())
            await registry.start_subagent("toolu_1")
            assert manager.is_dirty

        assert state_path.exists()
        assert manager.is_dirty is False

    async def test_start_disabled(self, manager: PersistenceManager) -> None:
        manager.start()
        await manager.dispose()


class TestQueries:
    """Tests for task queries and output access."""

    async def test_filter_and_order(self, registry: SubagentRegistry, manager: PersistenceManager) -> None:
        first = registry.track_subagent("toolu_1", "sess-1", make_input("Explore"))
        second = registry.track_subagent("toolu_2", "sess-2", make_input("Plan", run_in_background=True))
        third = registry.track_subagent("toolu_3", "sess-1", make_input("Plan"))
        first.created_at, second.created_at, third.created_at = 1_000, 2_000, 3_000
        await registry.start_subagent("toolu_3")

        assert [t.id for t in manager.get_all_tasks()] == ["toolu_3", "toolu_2", "toolu_1"]
        assert [t.id for t in manager.get_all_tasks(TaskFilter(session_id="sess-1"))] == ["toolu_3", "toolu_1"]
        assert [t.id for t in manager.get_all_tasks(TaskFilter(subagent_type="Plan"))] == ["toolu_3", "toolu_2"]
        assert [t.id for t in manager.get_all_tasks(TaskFilter(run_in_background=True))] == ["toolu_2"]
        assert [
            t.id for t in manager.get_all_tasks(TaskFilter(status={SubagentStatus.RUNNING}))
        ] == ["toolu_3"]
        assert [t.id for t in manager.get_all_tasks(TaskFilter(newer_than=2_000))] == ["toolu_3"]
        assert [t.id for t in manager.get_all_tasks(TaskFilter(older_than=2_000))] == ["toolu_1"]

    async def test_task_output(
        self, registry: SubagentRegistry, manager: PersistenceManager, tmp_path: Path
    ) -> None:
        output = tmp_path / "out.txt"
        output.write_text("line1\nline2\nline3")
        registry.track_subagent("toolu_1", "sess-1", make_input(run_in_background=True))
        await registry.handle_task_notification(
            TaskNotification(task_id="toolu_1", status="completed", output_file=str(output), summary="s")
        )

        assert manager.get_task_output("toolu_1") == "line1\nline2\nline3"
        assert manager.get_task_output_tail("toolu_1", 2) == "line2\nline3"
        assert manager.get_task_output_tail("toolu_1", 10) == "line1\nline2\nline3"
        assert manager.get_task_output_tail("toolu_1", 0) == "line1\nline2\nline3"

    async def test_task_output_unavailable(
        self, registry: SubagentRegistry, manager: PersistenceManager, tmp_path: Path
    ) -> None:
        registry.track_subagent("toolu_1", "sess-1", make_input())
        registry.track_subagent("toolu_2", "sess-1", make_input())
        registry.get_subagent("toolu_2").output_file = str(tmp_path / "missing.txt")

        assert manager.get_task_output("toolu_1") is None
        assert manager.get_task_output("toolu_2") is None
        assert manager.get_task_output_tail("toolu_2", 5) is None
        assert manager.get_task_output("nope") is None


class TestCommands:
    """Tests for cancel and cleanup."""

    async def test_cancel_running_task_flushes(
        self, registry: SubagentRegistry, manager: PersistenceManager, state_path: Path
    ) -> None:
        registry.track_subagent("toolu_1", "sess-1", make_input())
        await registry.start_subagent("toolu_1")

        assert await manager.cancel_task("toolu_1") is True

        data = json.loads(state_path.read_text())
        assert data["tasks"][0]["status"] == "cancelled"
        assert manager.is_dirty is False

    async def test_cancel_rejects_non_running(
        self, registry: SubagentRegistry, manager: PersistenceManager
    ) -> None:
        registry.track_subagent("toolu_1", "sess-1", make_input())

        assert await manager.cancel_task("toolu_1") is False
        assert await manager.cancel_task("nope") is False
        assert registry.get_subagent("toolu_1").status is SubagentStatus.PENDING

    async def test_cleanup_persists_removals(
        self, registry: SubagentRegistry, state_path: Path
    ) -> None:
        manager = PersistenceManager(
            registry, persistence_path=state_path, auto_save=False, max_task_age_ms=1_000
        )
        registry.track_subagent("toolu_1", "sess-1", make_input())
        await registry.complete_subagent("toolu_1", agent_id="a-1")
        registry.get_subagent("toolu_1").completed_at = now_ms() - 5_000

        assert await manager.cleanup() == 1
        assert json.loads(state_path.read_text())["tasks"] == []
        assert manager.get_resumable_tasks() == []
        assert await manager.cleanup() == 0

    async def test_stats_and_lookup(self, registry: SubagentRegistry, manager: PersistenceManager) -> None:
        registry.track_subagent("toolu_1", "sess-1", make_input())

        assert manager.get_task("toolu_1") is registry.get_subagent("toolu_1")
        assert manager.get_stats().pending == 1
