"""Cross-session persistence for tracked subagents.

- PersistenceManager: dirty-tracked snapshots of a SubagentRegistry
- TaskFilter: predicates for task queries
- acks: text acknowledgements for tool-facing task queries and commands
"""

from agentledger.persistence.acks import (
    TaskAck,
    cancel_task,
    get_running_tasks,
    get_task_output,
    get_task_stats,
    get_task_status,
    list_resumable_tasks,
    list_tasks,
)
from agentledger.persistence.manager import PersistenceManager, TaskFilter

__all__ = [
    "PersistenceManager",
    "TaskAck",
    "TaskFilter",
    "cancel_task",
    "get_running_tasks",
    "get_task_output",
    "get_task_stats",
    "get_task_status",
    "list_resumable_tasks",
    "list_tasks",
]
