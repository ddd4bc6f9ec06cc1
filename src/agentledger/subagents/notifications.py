"""Outbound subagent notifications.

The registry reports every lifecycle transition to a ``NotificationSink``.
What the sink does with it (forward to a UI client, queue it, drop it) is up
to the host; ``NullNotificationSink`` is used when none is supplied.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from agentledger.subagents.schema import now_ms

if TYPE_CHECKING:
    from agentledger.subagents.schema import (
        SubagentEventType,
        TaskNotification,
        TrackedSubagent,
    )


@dataclass
class SubagentUpdate:
    """Snapshot of a subagent at the moment of a lifecycle event."""

    id: str
    event_type: SubagentEventType
    subagent_type: str
    description: str
    status: str
    parent_session_id: str
    run_in_background: bool
    parent_tool_use_id: str | None = None
    model: str | None = None
    agent_id: str | None = None
    duration_ms: int | None = None
    output_file: str | None = None
    summary: str | None = None
    task_notification: TaskNotification | None = None

    @classmethod
    def from_subagent(
        cls,
        subagent: TrackedSubagent,
        event_type: SubagentEventType,
        task_notification: TaskNotification | None = None,
    ) -> SubagentUpdate:
        return cls(
            id=subagent.id,
            event_type=event_type,
            subagent_type=subagent.subagent_type,
            description=subagent.description,
            status=subagent.status.value,
            parent_session_id=subagent.parent_session_id,
            run_in_background=subagent.run_in_background,
            parent_tool_use_id=subagent.parent_tool_use_id,
            model=subagent.model,
            agent_id=subagent.agent_id,
            duration_ms=subagent.duration_ms(now_ms()),
            output_file=subagent.output_file,
            summary=subagent.summary,
            task_notification=task_notification,
        )

    def to_dict(self) -> dict[str, Any]:
        subagent: dict[str, Any] = {
            "id": self.id,
            "eventType": self.event_type.value,
            "subagentType": self.subagent_type,
            "description": self.description,
            "status": self.status,
            "parentSessionId": self.parent_session_id,
            "runInBackground": self.run_in_background,
        }
        optional = {
            "parentToolUseId": self.parent_tool_use_id,
            "model": self.model,
            "agentId": self.agent_id,
            "durationMs": self.duration_ms,
            "outputFile": self.output_file,
            "summary": self.summary,
        }
        subagent.update({k: v for k, v in optional.items() if v is not None})

        data: dict[str, Any] = {"subagent": subagent}
        if self.task_notification is not None:
            data["taskNotification"] = self.task_notification.to_dict()
        return data


@runtime_checkable
class NotificationSink(Protocol):
    """Receiver for subagent lifecycle notifications."""

    async def send_subagent_update(self, update: SubagentUpdate) -> None: ...


class NullNotificationSink:
    """Sink that discards every update."""

    async def send_subagent_update(self, update: SubagentUpdate) -> None:
        return None
