"""One-shot callbacks keyed by tool-use id.

A caller that starts a tool call registers what should happen once the host
reports the call finished (the post-tool-use hook). The callback runs at most
once and is removed before it runs.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Union

from agentledger.logging import get_logger

log = get_logger("hooks")

PostToolUseCallback = Callable[[str, Any, Any], Union[Awaitable[None], None]]


class ToolUseCallbackRegistry:
    """Maps tool-use ids to post-tool-use callbacks."""

    def __init__(self) -> None:
        self._callbacks: dict[str, PostToolUseCallback] = {}

    def register(self, tool_use_id: str, on_post_tool_use: PostToolUseCallback) -> None:
        """Register (or replace) the callback for a tool-use id."""
        self._callbacks[tool_use_id] = on_post_tool_use

    def discard(self, tool_use_id: str) -> bool:
        """Drop a pending callback without running it."""
        return self._callbacks.pop(tool_use_id, None) is not None

    def __contains__(self, tool_use_id: object) -> bool:
        return tool_use_id in self._callbacks

    def __len__(self) -> int:
        return len(self._callbacks)

    async def dispatch(self, tool_use_id: str, tool_input: Any, tool_response: Any) -> bool:
        """Run and remove the callback registered for ``tool_use_id``.

        Args:
            tool_use_id: Id of the finished tool call
            tool_input: Arguments the tool was called with
            tool_response: What the tool returned

        Returns:
            True if a callback was found and invoked, False otherwise
        """
        callback = self._callbacks.pop(tool_use_id, None)
        if callback is None:
            log.error("No post-tool-use callback registered for %s", tool_use_id)
            return False

        result = callback(tool_use_id, tool_input, tool_response)
        if asyncio.iscoroutine(result):
            await result
        return True
