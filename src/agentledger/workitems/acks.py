"""Text acknowledgements for work-item CRUD.

A protocol layer that exposes the store as agent tools calls these helpers and
relays ``WorkItemAck.text`` back to the model. Failures become error acks
instead of exceptions.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from agentledger.logging import get_logger
from agentledger.workitems.schema import WorkItemStatus
from agentledger.workitems.store import WorkItemNotFoundError

if TYPE_CHECKING:
    from agentledger.workitems.schema import (
        WorkItem,
        WorkItemCreate,
        WorkItemStats,
        WorkItemUpdate,
    )
    from agentledger.workitems.store import WorkItemStore

log = get_logger("workitems")

COMPLETION_HINT = (
    "Task completed. Call TaskList now to find your next available task "
    "or see if your work unblocked others."
)


@dataclass
class WorkItemAck:
    """Result of one work-item operation."""

    text: str
    item: WorkItem | None = None
    items: list[WorkItem] | None = None
    stats: WorkItemStats | None = None
    is_error: bool = False


def _failure(verb: str, error: Exception) -> WorkItemAck:
    log.error("Failed to %s task: %s", verb, error)
    return WorkItemAck(text=f"Failed to {verb} task: {error}", is_error=True)


def create_item(store: WorkItemStore, item: WorkItemCreate) -> WorkItemAck:
    try:
        task = store.create(item)
    except OSError as e:
        return _failure("create", e)
    return WorkItemAck(text=f'Created task {task.id}: "{task.subject}"', item=task)


def get_item(store: WorkItemStore, task_id: str) -> WorkItemAck:
    try:
        task = store.get(task_id)
    except (OSError, ValueError) as e:
        return _failure("get", e)
    if task is None:
        return WorkItemAck(text=f"Task not found: {task_id}", is_error=True)
    return WorkItemAck(text=json.dumps(task.to_dict(), indent=2), item=task)


def update_item(store: WorkItemStore, task_id: str, patch: WorkItemUpdate) -> WorkItemAck:
    """Apply a patch; a completed item gets a hint to look for the next one."""
    try:
        task = store.update(task_id, patch)
    except WorkItemNotFoundError as e:
        return WorkItemAck(text=str(e), is_error=True)
    except (OSError, ValueError) as e:
        return _failure("update", e)

    text = f'Updated task {task.id}: "{task.subject}" ({task.status.value})'
    if task.status is WorkItemStatus.COMPLETED:
        text += "\n\n" + COMPLETION_HINT
    return WorkItemAck(text=text, item=task)


def summarize(tasks: list[WorkItem]) -> list[dict[str, Any]]:
    """Compact task entries listing only blockers that are still open."""
    completed = {t.id for t in tasks if t.status is WorkItemStatus.COMPLETED}
    summaries = []
    for task in tasks:
        entry: dict[str, Any] = {
            "id": task.id,
            "subject": task.subject,
            "status": task.status.value,
        }
        if task.owner is not None:
            entry["owner"] = task.owner
        entry["blockedBy"] = [i for i in task.blocked_by if i not in completed]
        summaries.append(entry)
    return summaries


def list_items(store: WorkItemStore) -> WorkItemAck:
    try:
        tasks = store.list()
    except OSError as e:
        return _failure("list", e)

    stats = store.get_stats()
    payload = {"stats": stats.to_dict(), "tasks": summarize(tasks)}
    return WorkItemAck(text=json.dumps(payload, indent=2), items=tasks, stats=stats)


def delete_item(store: WorkItemStore, task_id: str) -> WorkItemAck:
    try:
        deleted = store.delete(task_id)
    except OSError as e:
        return _failure("delete", e)
    if not deleted:
        return WorkItemAck(text=f"Task not found: {task_id}", is_error=True)
    return WorkItemAck(text=f"Deleted task {task_id}")
