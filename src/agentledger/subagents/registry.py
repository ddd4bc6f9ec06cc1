"""In-memory registry of subagent executions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from agentledger.logging import VERBOSE, get_logger
from agentledger.subagents.events import SubagentEventBus
from agentledger.subagents.notifications import NullNotificationSink, SubagentUpdate
from agentledger.subagents.schema import (
    RESUMABLE_STATUSES,
    STATE_VERSION,
    SubagentEventType,
    SubagentStats,
    SubagentStatus,
    TrackedSubagent,
    now_ms,
)

if TYPE_CHECKING:
    from agentledger.subagents.events import SubagentEventListener
    from agentledger.subagents.notifications import NotificationSink
    from agentledger.subagents.schema import TaskNotification, TaskToolInput

log = get_logger("subagents")

# Notification status -> (new status, event)
_NOTIFICATION_OUTCOMES = {
    "completed": (SubagentStatus.COMPLETED, SubagentEventType.COMPLETED),
    "failed": (SubagentStatus.FAILED, SubagentEventType.FAILED),
    "stopped": (SubagentStatus.STOPPED, SubagentEventType.STOPPED),
}


class SubagentRegistry:
    """Tracks the lifecycle of every subagent spawned through the Task tool.

    Status flows ``pending -> running -> completed|failed|cancelled|stopped``.
    Transitions are not validated against the current status; callers are
    trusted to drive them in order. Entries are indexed by id, by parent
    session, and by the agent id reported on completion (for resume lookups).

    Transitions publish on an event bus and then notify the sink. Both are
    awaited in order, so a transition returns only after every listener ran.

    Example:
        ```python
        registry = SubagentRegistry()
        registry.track_subagent("toolu_1", "sess-1", TaskToolInput(...))
        await registry.start_subagent("toolu_1")
        await registry.complete_subagent("toolu_1", result="done", agent_id="a-1")
        registry.find_by_agent_id("a-1")
        ```
    """

    def __init__(self, sink: NotificationSink | None = None) -> None:
        """Initialize the registry.

        Args:
            sink: Receiver for lifecycle notifications; discarded if omitted.
        """
        self._sink: NotificationSink = sink if sink is not None else NullNotificationSink()
        self._events = SubagentEventBus()

        self._subagents: dict[str, TrackedSubagent] = {}
        self._session_index: dict[str, dict[str, None]] = {}  # insertion-ordered id sets
        self._agent_index: dict[str, str] = {}  # agent_id -> subagent id

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def track_subagent(
        self,
        tool_use_id: str,
        session_id: str,
        tool_input: TaskToolInput,
        parent_tool_use_id: str | None = None,
    ) -> TrackedSubagent:
        """Register a new pending subagent for a Task tool call.

        Args:
            tool_use_id: Id of the spawning tool call, used as the subagent id
            session_id: Session the subagent was spawned in
            tool_input: Task tool arguments
            parent_tool_use_id: Spawning subagent's id for nested subagents

        Returns:
            The tracked entry
        """
        is_resumed = bool(tool_input.resume)
        original_task_id = self._agent_index.get(tool_input.resume) if tool_input.resume else None

        subagent = TrackedSubagent(
            id=tool_use_id,
            parent_session_id=session_id,
            parent_tool_use_id=parent_tool_use_id,
            subagent_type=tool_input.subagent_type,
            description=tool_input.description,
            prompt=tool_input.prompt,
            model=tool_input.model,
            status=SubagentStatus.PENDING,
            created_at=now_ms(),
            run_in_background=bool(tool_input.run_in_background),
            max_turns=tool_input.max_turns,
            agent_name=tool_input.name,
            team_name=tool_input.team_name,
            permission_mode=tool_input.mode,
            is_resumed=is_resumed,
            original_task_id=original_task_id,
        )

        self._subagents[tool_use_id] = subagent
        self._session_index.setdefault(session_id, {})[tool_use_id] = None

        log.info(
            "Tracked subagent %s (%s: %s)%s",
            tool_use_id,
            tool_input.subagent_type,
            tool_input.description,
            " [resumed]" if is_resumed else "",
        )
        return subagent

    async def start_subagent(self, tool_use_id: str) -> None:
        """Mark a subagent as running."""
        subagent = self._subagents.get(tool_use_id)
        if subagent is None:
            log.error("Cannot start unknown subagent: %s", tool_use_id)
            return

        subagent.status = SubagentStatus.RUNNING
        subagent.started_at = now_ms()

        await self._publish(subagent, SubagentEventType.STARTED)

    async def complete_subagent(
        self,
        tool_use_id: str,
        result: Any = None,
        agent_id: str | None = None,
    ) -> None:
        """Mark a subagent as completed.

        Args:
            tool_use_id: Subagent id
            result: Result payload to keep with the entry
            agent_id: Resume handle; indexed for find_by_agent_id()
        """
        subagent = self._subagents.get(tool_use_id)
        if subagent is None:
            log.error("Cannot complete unknown subagent: %s", tool_use_id)
            return

        subagent.status = SubagentStatus.COMPLETED
        subagent.completed_at = now_ms()
        subagent.result = result
        if agent_id:
            subagent.agent_id = agent_id
            self._agent_index[agent_id] = tool_use_id

        await self._publish(subagent, SubagentEventType.COMPLETED)

        log.info(
            "Subagent completed: %s (duration: %sms)%s",
            tool_use_id,
            subagent.duration_ms(),
            f" [agent_id: {agent_id}]" if agent_id else "",
        )

    async def fail_subagent(self, tool_use_id: str, error: str) -> None:
        """Mark a subagent as failed with an error message."""
        subagent = self._subagents.get(tool_use_id)
        if subagent is None:
            log.error("Cannot fail unknown subagent: %s", tool_use_id)
            return

        subagent.status = SubagentStatus.FAILED
        subagent.completed_at = now_ms()
        subagent.error = error

        await self._publish(subagent, SubagentEventType.FAILED)

        log.error("Subagent failed: %s - %s", tool_use_id, error)

    async def cancel_subagent(self, tool_use_id: str) -> None:
        """Mark a subagent as cancelled.

        Unknown ids are ignored without logging: cancellation routinely races
        with cleanup.
        """
        subagent = self._subagents.get(tool_use_id)
        if subagent is None:
            return

        subagent.status = SubagentStatus.CANCELLED
        subagent.completed_at = now_ms()

        await self._publish(subagent, SubagentEventType.CANCELLED)

        log.info("Subagent cancelled: %s", tool_use_id)

    async def handle_task_notification(self, notification: TaskNotification) -> None:
        """Apply an out-of-band completion signal for a background subagent."""
        subagent = self._subagents.get(notification.task_id)
        if subagent is None:
            log.error("Received task notification for unknown subagent: %s", notification.task_id)
            return

        subagent.output_file = notification.output_file
        subagent.summary = notification.summary
        subagent.completed_at = now_ms()

        outcome = _NOTIFICATION_OUTCOMES.get(notification.status)
        if outcome is None:
            log.warning(
                "Ignoring unknown notification status %r for %s",
                notification.status,
                notification.task_id,
            )
            return

        subagent.status, event = outcome
        await self._publish(subagent, event, task_notification=notification)

        log.info("Task notification: %s -> %s", notification.task_id, notification.status)

    async def update_progress(self, tool_use_id: str, progress: Any = None) -> None:
        """Publish a progress event for a running subagent; no-op otherwise."""
        subagent = self._subagents.get(tool_use_id)
        if subagent is None or subagent.status is not SubagentStatus.RUNNING:
            return

        log.log(VERBOSE, "Progress from subagent %s: %s", tool_use_id, progress)
        await self._publish(subagent, SubagentEventType.PROGRESS, data=progress)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_subagent(self, tool_use_id: str) -> TrackedSubagent | None:
        return self._subagents.get(tool_use_id)

    def get_session_subagents(self, session_id: str) -> list[TrackedSubagent]:
        ids = self._session_index.get(session_id, {})
        return [self._subagents[i] for i in ids if i in self._subagents]

    def get_running_subagents(self) -> list[TrackedSubagent]:
        return [s for s in self._subagents.values() if s.status is SubagentStatus.RUNNING]

    def get_running_subagents_for_session(self, session_id: str) -> list[TrackedSubagent]:
        """Running subagents of a session, most recently started first."""
        running = [
            s
            for s in self.get_session_subagents(session_id)
            if s.status is SubagentStatus.RUNNING
        ]
        running.sort(key=lambda s: s.started_at or 0, reverse=True)
        return running

    def get_active_subagent(self, session_id: str) -> TrackedSubagent | None:
        """The most recently started running subagent of a session.

        Used to attribute nested tool activity to the subagent that spawned it.
        """
        running = self.get_running_subagents_for_session(session_id)
        return running[0] if running else None

    def get_all_subagents(self) -> list[TrackedSubagent]:
        return list(self._subagents.values())

    def find_by_agent_id(self, agent_id: str) -> TrackedSubagent | None:
        subagent_id = self._agent_index.get(agent_id)
        if subagent_id is None:
            return None
        return self._subagents.get(subagent_id)

    def get_resumable_tasks(self) -> list[TrackedSubagent]:
        """Entries with an agent id whose run ended in a resumable outcome."""
        return [
            s
            for s in self._subagents.values()
            if s.agent_id and s.status in RESUMABLE_STATUSES
        ]

    def is_subagent(self, tool_use_id: str) -> bool:
        return tool_use_id in self._subagents

    def get_stats(self) -> SubagentStats:
        subagents = list(self._subagents.values())
        stats = SubagentStats(total=len(subagents))

        durations: list[int] = []
        for s in subagents:
            setattr(stats, s.status.value, getattr(stats, s.status.value) + 1)
            stats.by_type[s.subagent_type] = stats.by_type.get(s.subagent_type, 0) + 1
            if (
                s.status in RESUMABLE_STATUSES
                and s.started_at is not None
                and s.completed_at is not None
            ):
                durations.append(s.completed_at - s.started_at)

        if durations:
            stats.average_duration_ms = round(sum(durations) / len(durations))
        return stats

    # =========================================================================
    # Events
    # =========================================================================

    def add_event_listener(self, event: SubagentEventType, listener: SubagentEventListener) -> None:
        self._events.add_listener(event, listener)

    def remove_event_listener(
        self, event: SubagentEventType, listener: SubagentEventListener
    ) -> None:
        self._events.remove_listener(event, listener)

    async def emit_event(
        self,
        event: SubagentEventType,
        subagent: TrackedSubagent,
        data: Any = None,
    ) -> None:
        await self._events.emit(event, subagent, data)

    async def _publish(
        self,
        subagent: TrackedSubagent,
        event: SubagentEventType,
        data: Any = None,
        task_notification: TaskNotification | None = None,
    ) -> None:
        await self._events.emit(event, subagent, data)

        update = SubagentUpdate.from_subagent(subagent, event, task_notification)
        try:
            await self._sink.send_subagent_update(update)
        except Exception:
            log.exception("Failed to send %s notification for %s", event.value, subagent.id)

    # =========================================================================
    # Maintenance
    # =========================================================================

    def cleanup(self, max_age_ms: int = 60 * 60 * 1000) -> int:
        """Remove terminal entries that completed more than ``max_age_ms`` ago.

        Pending and running entries are never removed.

        Returns:
            Number of entries removed
        """
        now = now_ms()
        expired = [
            s
            for s in self._subagents.values()
            if s.status.is_terminal
            and s.completed_at is not None
            and now - s.completed_at > max_age_ms
        ]

        for subagent in expired:
            self._forget(subagent)

        if expired:
            log.debug("Cleaned up %d subagents", len(expired))
        return len(expired)

    def clear(self) -> None:
        """Drop every tracked subagent and index."""
        self._subagents.clear()
        self._session_index.clear()
        self._agent_index.clear()

    def _forget(self, subagent: TrackedSubagent) -> None:
        self._subagents.pop(subagent.id, None)
        session_ids = self._session_index.get(subagent.parent_session_id)
        if session_ids is not None:
            session_ids.pop(subagent.id, None)
            if not session_ids:
                del self._session_index[subagent.parent_session_id]
        if subagent.agent_id and self._agent_index.get(subagent.agent_id) == subagent.id:
            del self._agent_index[subagent.agent_id]

    # =========================================================================
    # Snapshot
    # =========================================================================

    def export_state(self) -> dict[str, Any]:
        """Serialize every entry into a versioned snapshot."""
        return {
            "version": STATE_VERSION,
            "tasks": [s.to_dict() for s in self._subagents.values()],
            "lastUpdated": now_ms(),
        }

    def import_state(self, state: dict[str, Any]) -> None:
        """Load entries from a snapshot produced by export_state().

        Snapshots with an unknown version are rejected and leave the registry
        untouched, as are snapshots containing any malformed entry. Imported
        entries replace any entry with the same id.
        """
        version = state.get("version")
        if version != STATE_VERSION:
            log.error("Unknown state version: %s", version)
            return

        try:
            subagents = [TrackedSubagent.from_dict(data) for data in state.get("tasks") or []]
        except (AttributeError, KeyError, TypeError, ValueError):
            log.exception("Malformed task in snapshot, nothing imported")
            return

        for subagent in subagents:
            existing = self._subagents.get(subagent.id)
            if existing is not None:
                self._forget(existing)
            self._subagents[subagent.id] = subagent
            self._session_index.setdefault(subagent.parent_session_id, {})[subagent.id] = None
            if subagent.agent_id:
                self._agent_index[subagent.agent_id] = subagent.id

        log.info("Imported %d tasks from persistence", len(subagents))
