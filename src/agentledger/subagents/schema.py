"""Data schemas for subagent tracking."""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

STATE_VERSION = 1


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class SubagentStatus(Enum):
    """Lifecycle state of a subagent."""

    PENDING = "pending"  # Created but not started
    RUNNING = "running"  # Currently executing
    COMPLETED = "completed"  # Finished successfully
    FAILED = "failed"  # Finished with error
    CANCELLED = "cancelled"  # Interrupted by user
    STOPPED = "stopped"  # Stopped out of band (background task)

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        SubagentStatus.COMPLETED,
        SubagentStatus.FAILED,
        SubagentStatus.CANCELLED,
        SubagentStatus.STOPPED,
    }
)

# Outcomes that leave a resumable agent behind
RESUMABLE_STATUSES = frozenset(
    {SubagentStatus.COMPLETED, SubagentStatus.FAILED, SubagentStatus.STOPPED}
)


class SubagentEventType(Enum):
    """Event kinds published on the registry's event bus."""

    STARTED = "subagent_started"
    PROGRESS = "subagent_progress"
    COMPLETED = "subagent_completed"
    FAILED = "subagent_failed"
    CANCELLED = "subagent_cancelled"
    STOPPED = "subagent_stopped"


@dataclass
class TaskToolInput:
    """Arguments of the Task tool call that spawns a subagent."""

    description: str
    prompt: str
    subagent_type: str  # e.g. "general-purpose", "Explore", "Plan", or custom
    model: str | None = None
    max_turns: int | None = None
    run_in_background: bool | None = None
    resume: str | None = None  # agent_id of a previous run to resume
    name: str | None = None
    team_name: str | None = None
    mode: str | None = None  # Permission mode for the spawned agent

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TaskToolInput:
        return cls(
            description=data["description"],
            prompt=data["prompt"],
            subagent_type=data["subagent_type"],
            model=data.get("model"),
            max_turns=data.get("max_turns"),
            run_in_background=data.get("run_in_background"),
            resume=data.get("resume"),
            name=data.get("name"),
            team_name=data.get("team_name"),
            mode=data.get("mode"),
        )


def is_task_tool_input(value: Any) -> bool:
    """Check whether a raw tool input looks like a Task tool call."""
    return (
        isinstance(value, Mapping)
        and "prompt" in value
        and "subagent_type" in value
        and "description" in value
    )


def extract_subagent_meta(tool_input: TaskToolInput) -> dict[str, Any]:
    """Summarize the display-relevant fields of a Task tool input."""
    return {
        "description": tool_input.description,
        "subagent_type": tool_input.subagent_type,
        "model": tool_input.model,
        "run_in_background": bool(tool_input.run_in_background),
        "max_turns": tool_input.max_turns,
    }


@dataclass
class TaskNotification:
    """Out-of-band completion signal for a background subagent."""

    task_id: str
    status: str  # completed, failed, stopped
    output_file: str
    summary: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TaskNotification:
        return cls(
            task_id=data["task_id"],
            status=data["status"],
            output_file=data.get("output_file", ""),
            summary=data.get("summary", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "status": self.status,
            "outputFile": self.output_file,
            "summary": self.summary,
        }


# Attribute name -> serialized key, for optional fields omitted when unset
_OPTIONAL_FIELDS = {
    "parent_tool_use_id": "parentToolUseId",
    "model": "model",
    "started_at": "startedAt",
    "completed_at": "completedAt",
    "result": "result",
    "error": "error",
    "max_turns": "maxTurns",
    "agent_id": "agentId",
    "output_file": "outputFile",
    "summary": "summary",
    "agent_name": "agentName",
    "team_name": "teamName",
    "permission_mode": "permissionMode",
    "is_resumed": "isResumed",
    "original_task_id": "originalTaskId",
}


@dataclass
class TrackedSubagent:
    """A subagent execution tracked from creation to a terminal outcome.

    Timestamps are epoch milliseconds.
    """

    id: str  # Same as the spawning tool_use_id
    parent_session_id: str
    subagent_type: str
    description: str
    prompt: str
    status: SubagentStatus = SubagentStatus.PENDING
    created_at: int = field(default_factory=now_ms)
    run_in_background: bool = False
    parent_tool_use_id: str | None = None  # Set for nested subagents
    model: str | None = None
    started_at: int | None = None
    completed_at: int | None = None
    result: Any = None
    error: str | None = None
    max_turns: int | None = None
    agent_id: str | None = None  # Resume handle reported on completion
    output_file: str | None = None
    summary: str | None = None
    agent_name: str | None = None
    team_name: str | None = None
    permission_mode: str | None = None
    is_resumed: bool | None = None
    original_task_id: str | None = None

    def duration_ms(self, now: int | None = None) -> int | None:
        """Elapsed run time; open-ended runs are measured up to ``now``."""
        if self.started_at is None:
            return None
        end = self.completed_at if self.completed_at is not None else (now or now_ms())
        return end - self.started_at

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "parentSessionId": self.parent_session_id,
            "subagentType": self.subagent_type,
            "description": self.description,
            "prompt": self.prompt,
            "status": self.status.value,
            "createdAt": self.created_at,
            "runInBackground": self.run_in_background,
        }
        for attr, key in _OPTIONAL_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TrackedSubagent:
        kwargs = {attr: data.get(key) for attr, key in _OPTIONAL_FIELDS.items()}
        return cls(
            id=data["id"],
            parent_session_id=data["parentSessionId"],
            subagent_type=data["subagentType"],
            description=data.get("description", ""),
            prompt=data.get("prompt", ""),
            status=SubagentStatus(data.get("status", "pending")),
            created_at=data["createdAt"],
            run_in_background=bool(data.get("runInBackground", False)),
            **kwargs,
        )


@dataclass
class SubagentStats:
    """Aggregate counts over tracked subagents."""

    total: int = 0
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    stopped: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    average_duration_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "running": self.running,
            "completed": self.completed,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "stopped": self.stopped,
            "byType": dict(self.by_type),
            "averageDurationMs": self.average_duration_ms,
        }
