"""Data schemas for work items."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class WorkItemStatus(Enum):
    """Progress of a work item."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class WorkItem:
    """A durable unit of tracked work with dependency edges.

    ``blocks`` lists items waiting on this one; ``blocked_by`` lists items
    that must finish first. Both sides of an edge are stored, one per file.
    """

    id: str  # Decimal string, unique within a task list
    subject: str  # Imperative title ("Run tests")
    description: str
    active_form: str  # Present participle shown while in progress ("Running tests")
    status: WorkItemStatus = WorkItemStatus.PENDING
    owner: str | None = None
    blocks: list[str] = field(default_factory=list)
    blocked_by: list[str] = field(default_factory=list)
    metadata: dict[str, Any] | None = None

    @property
    def numeric_id(self) -> int:
        try:
            return int(self.id)
        except ValueError:
            return 0

    @property
    def is_blocked(self) -> bool:
        return bool(self.blocked_by) and self.status is not WorkItemStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "subject": self.subject,
            "description": self.description,
            "activeForm": self.active_form,
            "status": self.status.value,
        }
        if self.owner is not None:
            data["owner"] = self.owner
        data["blocks"] = list(self.blocks)
        data["blockedBy"] = list(self.blocked_by)
        if self.metadata is not None:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkItem:
        return cls(
            id=str(data["id"]),
            subject=data.get("subject", ""),
            description=data.get("description", ""),
            active_form=data.get("activeForm", ""),
            status=WorkItemStatus(data.get("status", "pending")),
            owner=data.get("owner"),
            blocks=[str(i) for i in data.get("blocks", [])],
            blocked_by=[str(i) for i in data.get("blockedBy", [])],
            metadata=data.get("metadata"),
        )


@dataclass
class WorkItemCreate:
    """Input for WorkItemStore.create()."""

    subject: str
    description: str
    active_form: str | None = None  # Derived from subject when omitted
    metadata: dict[str, Any] | None = None


@dataclass
class WorkItemUpdate:
    """Patch for WorkItemStore.update(); None means leave unchanged."""

    status: WorkItemStatus | None = None
    subject: str | None = None
    description: str | None = None
    active_form: str | None = None
    owner: str | None = None
    add_blocks: list[str] | None = None
    add_blocked_by: list[str] | None = None
    metadata: dict[str, Any] | None = None  # Shallow merge; None values delete keys


@dataclass
class WorkItemStats:
    """Aggregate counts for a task list."""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    blocked: int = 0  # Not completed and still has blockers recorded

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "pending": self.pending,
            "inProgress": self.in_progress,
            "completed": self.completed,
            "blocked": self.blocked,
        }
