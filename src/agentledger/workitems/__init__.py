"""Durable work items with dependency edges.

- WorkItemStore: one JSON file per item under <base_path>/<task_list_id>/
- TaskListWatcher: polling watcher behind WorkItemStore.watch()
- derive_active_form: "Run tests" -> "Running tests"
- acks: text acknowledgements for tool-facing CRUD

Example usage:

    from agentledger.workitems import WorkItemCreate, WorkItemStore

    store = WorkItemStore("my-list")
    item = store.create(WorkItemCreate(subject="Run tests", description="..."))
"""

from agentledger.workitems.acks import (
    WorkItemAck,
    create_item,
    delete_item,
    get_item,
    list_items,
    update_item,
)
from agentledger.workitems.active_form import derive_active_form
from agentledger.workitems.schema import (
    WorkItem,
    WorkItemCreate,
    WorkItemStats,
    WorkItemStatus,
    WorkItemUpdate,
)
from agentledger.workitems.store import WorkItemNotFoundError, WorkItemStore
from agentledger.workitems.watcher import DirectoryChange, TaskListWatcher

__all__ = [
    "DirectoryChange",
    "TaskListWatcher",
    "WorkItem",
    "WorkItemAck",
    "WorkItemCreate",
    "WorkItemNotFoundError",
    "WorkItemStats",
    "WorkItemStatus",
    "WorkItemStore",
    "WorkItemUpdate",
    "create_item",
    "delete_item",
    "derive_active_form",
    "get_item",
    "list_items",
    "update_item",
]
