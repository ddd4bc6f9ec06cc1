"""Subagent lifecycle tracking.

- SubagentRegistry: status state machine, session and agent-id indices, event bus
- SubagentEventBus: per-event listener fan-out with isolated failures
- NotificationSink: receiver for SubagentUpdate payloads
- ToolUseCallbackRegistry: one-shot post-tool-use callbacks

Example usage:

    from agentledger.subagents import SubagentRegistry, TaskToolInput

    registry = SubagentRegistry()
    registry.track_subagent(
        "toolu_1",
        "sess-1",
        TaskToolInput(description="Find auth code", prompt="...", subagent_type="Explore"),
    )
    await registry.start_subagent("toolu_1")
"""

from agentledger.subagents.events import SubagentEventBus, SubagentEventListener
from agentledger.subagents.hooks import ToolUseCallbackRegistry
from agentledger.subagents.notifications import (
    NotificationSink,
    NullNotificationSink,
    SubagentUpdate,
)
from agentledger.subagents.registry import SubagentRegistry
from agentledger.subagents.schema import (
    STATE_VERSION,
    SubagentEventType,
    SubagentStats,
    SubagentStatus,
    TaskNotification,
    TaskToolInput,
    TrackedSubagent,
    extract_subagent_meta,
    is_task_tool_input,
)

__all__ = [
    "STATE_VERSION",
    "NotificationSink",
    "NullNotificationSink",
    "SubagentEventBus",
    "SubagentEventListener",
    "SubagentEventType",
    "SubagentRegistry",
    "SubagentStats",
    "SubagentStatus",
    "SubagentUpdate",
    "TaskNotification",
    "TaskToolInput",
    "ToolUseCallbackRegistry",
    "TrackedSubagent",
    "extract_subagent_meta",
    "is_task_tool_input",
]
