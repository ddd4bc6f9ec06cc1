"""agentledger: subagent lifecycle tracking, snapshot persistence and work items."""

__version__ = "0.1.0"

# Public API
from agentledger.config import Config, get_config, load_config
from agentledger.logging import get_logger, setup_logging
from agentledger.persistence import PersistenceManager, TaskFilter
from agentledger.subagents import (
    NotificationSink,
    SubagentEventType,
    SubagentRegistry,
    SubagentStatus,
    SubagentUpdate,
    TaskNotification,
    TaskToolInput,
    ToolUseCallbackRegistry,
    TrackedSubagent,
)
from agentledger.workitems import (
    WorkItem,
    WorkItemCreate,
    WorkItemNotFoundError,
    WorkItemStatus,
    WorkItemStore,
    WorkItemUpdate,
    derive_active_form,
)

__all__ = [
    # Subagents
    "SubagentRegistry",
    "SubagentStatus",
    "SubagentEventType",
    "SubagentUpdate",
    "NotificationSink",
    "TaskNotification",
    "TaskToolInput",
    "ToolUseCallbackRegistry",
    "TrackedSubagent",
    # Persistence
    "PersistenceManager",
    "TaskFilter",
    # Work items
    "WorkItem",
    "WorkItemCreate",
    "WorkItemNotFoundError",
    "WorkItemStatus",
    "WorkItemStore",
    "WorkItemUpdate",
    "derive_active_form",
    # Config
    "Config",
    "load_config",
    "get_config",
    # Logging
    "get_logger",
    "setup_logging",
]
