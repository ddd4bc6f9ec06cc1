"""Typed event bus for subagent lifecycle events."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Union

from agentledger.logging import get_logger
from agentledger.subagents.schema import SubagentEventType

if TYPE_CHECKING:
    from agentledger.subagents.schema import TrackedSubagent

log = get_logger("subagents.events")

SubagentEventListener = Callable[["TrackedSubagent", Any], Union[Awaitable[None], None]]


class SubagentEventBus:
    """Fan-out of lifecycle events to listeners registered per event kind.

    Listeners run sequentially in registration order. Coroutine listeners are
    awaited before the next one runs. A listener that raises is logged and
    skipped; the remaining listeners still receive the event and the caller
    never sees the error.
    """

    def __init__(self) -> None:
        # dict preserves insertion order and gives set semantics for listeners
        self._listeners: dict[SubagentEventType, dict[SubagentEventListener, None]] = {}

    def add_listener(self, event: SubagentEventType, listener: SubagentEventListener) -> None:
        self._listeners.setdefault(event, {})[listener] = None

    def remove_listener(self, event: SubagentEventType, listener: SubagentEventListener) -> None:
        listeners = self._listeners.get(event)
        if listeners is not None:
            listeners.pop(listener, None)

    def listener_count(self, event: SubagentEventType) -> int:
        return len(self._listeners.get(event, {}))

    async def emit(
        self,
        event: SubagentEventType,
        subagent: TrackedSubagent,
        data: Any = None,
    ) -> None:
        """Deliver an event to every listener registered for it."""
        listeners = self._listeners.get(event)
        if not listeners:
            return

        # Snapshot so listeners can unsubscribe themselves mid-delivery
        for listener in list(listeners):
            try:
                result = listener(subagent, data)
                if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
                    await result
            except Exception:
                log.exception("Error in %s listener for %s", event.value, subagent.id)
