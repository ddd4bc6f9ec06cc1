"""Text acknowledgements for subagent task queries and commands.

The tool-facing counterpart of ``workitems.acks`` for tracked subagents: a
protocol layer calls these helpers and relays ``TaskAck.text`` back to the
model. JSON payloads use camelCase keys, drop unset fields, and render
timestamps as ISO-8601 UTC strings.
"""

from __future__ import annotations

import json
from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from agentledger.persistence.manager import TaskFilter
from agentledger.subagents.schema import RESUMABLE_STATUSES, SubagentStatus, now_ms

if TYPE_CHECKING:
    from agentledger.persistence.manager import PersistenceManager
    from agentledger.subagents.schema import TrackedSubagent

DEFAULT_LIST_LIMIT = 20
DEFAULT_RESUMABLE_LIMIT = 10


@dataclass
class TaskAck:
    """Result of one subagent task operation."""

    text: str
    task: TrackedSubagent | None = None
    tasks: list[TrackedSubagent] | None = None
    is_error: bool = False


def iso_ms(timestamp: int | None) -> str | None:
    """Epoch milliseconds as ``2024-01-02T03:04:05.678Z``."""
    if not timestamp:
        return None
    seconds, millis = divmod(timestamp, 1000)
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(milliseconds=millis)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def can_resume(task: TrackedSubagent) -> bool:
    return bool(task.agent_id) and task.status in RESUMABLE_STATUSES


def _run_duration(task: TrackedSubagent) -> int | None:
    if task.started_at and task.completed_at:
        return task.completed_at - task.started_at
    return None


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def _not_found(task_id: str) -> TaskAck:
    return TaskAck(text=f"Task not found: {task_id}", is_error=True)


def list_tasks(
    manager: PersistenceManager,
    *,
    status: Collection[SubagentStatus] | None = None,
    session_id: str | None = None,
    background_only: bool = False,
    subagent_type: str | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> TaskAck:
    """Newest tasks matching the filter, at most ``limit`` of them."""
    tasks = manager.get_all_tasks(
        TaskFilter(
            status=status,
            session_id=session_id,
            run_in_background=True if background_only else None,
            subagent_type=subagent_type,
        )
    )
    limited = tasks[:limit]
    payload = {
        "total": len(tasks),
        "returned": len(limited),
        "tasks": [
            _compact(
                {
                    "id": t.id,
                    "type": t.subagent_type,
                    "description": t.description,
                    "status": t.status.value,
                    "runInBackground": t.run_in_background,
                    "createdAt": iso_ms(t.created_at),
                    "durationMs": _run_duration(t),
                    "agentId": t.agent_id,
                    "canResume": can_resume(t),
                    "summary": t.summary,
                }
            )
            for t in limited
        ],
    }
    return TaskAck(text=_dump(payload), tasks=limited)


def get_task_status(manager: PersistenceManager, task_id: str) -> TaskAck:
    """Full record of one task."""
    task = manager.get_task(task_id)
    if task is None:
        return _not_found(task_id)

    payload = _compact(
        {
            "id": task.id,
            "type": task.subagent_type,
            "description": task.description,
            "prompt": task.prompt,
            "status": task.status.value,
            "model": task.model,
            "runInBackground": task.run_in_background,
            "parentSessionId": task.parent_session_id,
            "parentToolUseId": task.parent_tool_use_id,
            "createdAt": iso_ms(task.created_at),
            "startedAt": iso_ms(task.started_at),
            "completedAt": iso_ms(task.completed_at),
            "durationMs": _run_duration(task),
            "agentId": task.agent_id,
            "agentName": task.agent_name,
            "teamName": task.team_name,
            "permissionMode": task.permission_mode,
            "outputFile": task.output_file,
            "summary": task.summary,
            "result": task.result,
            "error": task.error,
            "isResumed": task.is_resumed,
            "originalTaskId": task.original_task_id,
            "canResume": can_resume(task),
        }
    )
    return TaskAck(text=_dump(payload), task=task)


def get_task_output(manager: PersistenceManager, task_id: str, tail: int | None = None) -> TaskAck:
    """Contents of a background task's output file, optionally only the tail."""
    task = manager.get_task(task_id)
    if task is None:
        return _not_found(task_id)
    if not task.output_file:
        return TaskAck(text=f"Task {task_id} has no output file", task=task, is_error=True)

    if tail:
        output = manager.get_task_output_tail(task_id, tail)
    else:
        output = manager.get_task_output(task_id)
    if output is None:
        return TaskAck(text=f"Output file not found: {task.output_file}", task=task, is_error=True)
    return TaskAck(text=output, task=task)


async def cancel_task(manager: PersistenceManager, task_id: str) -> TaskAck:
    """Cancel a running task and persist the change."""
    task = manager.get_task(task_id)
    if task is None:
        return _not_found(task_id)
    if task.status is not SubagentStatus.RUNNING:
        return TaskAck(text=f"Task not running: {task.status.value}", task=task, is_error=True)

    await manager.cancel_task(task_id)
    return TaskAck(text=f"Task {task_id} cancelled", task=task)


def list_resumable_tasks(manager: PersistenceManager, limit: int = DEFAULT_RESUMABLE_LIMIT) -> TaskAck:
    """Tracked tasks that left an agent id behind for a later resume."""
    tasks = manager.get_resumable_tasks()
    tasks.sort(key=lambda t: t.completed_at or 0, reverse=True)
    limited = tasks[:limit]
    payload = {
        "count": len(limited),
        "tasks": [
            _compact(
                {
                    "id": t.id,
                    "agentId": t.agent_id,
                    "type": t.subagent_type,
                    "description": t.description,
                    "status": t.status.value,
                    "completedAt": iso_ms(t.completed_at),
                    "summary": t.summary,
                }
            )
            for t in limited
        ],
    }
    return TaskAck(text=_dump(payload), tasks=limited)


def get_task_stats(manager: PersistenceManager) -> TaskAck:
    return TaskAck(text=_dump(manager.get_stats().to_dict()))


def get_running_tasks(
    manager: PersistenceManager,
    session_id: str,
    all_sessions: bool = False,
) -> TaskAck:
    """Running tasks of one session (most recently started first) or of all sessions."""
    registry = manager.registry
    if all_sessions:
        tasks = registry.get_running_subagents()
    else:
        tasks = registry.get_running_subagents_for_session(session_id)

    now = now_ms()
    payload = {
        "count": len(tasks),
        "tasks": [
            _compact(
                {
                    "id": t.id,
                    "type": t.subagent_type,
                    "description": t.description,
                    "runInBackground": t.run_in_background,
                    "startedAt": iso_ms(t.started_at),
                    "elapsedMs": now - t.started_at if t.started_at else None,
                }
            )
            for t in tasks
        ],
    }
    return TaskAck(text=_dump(payload), tasks=tasks)
