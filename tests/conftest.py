"""Root pytest configuration for all tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from agentledger.config import reset_config
from agentledger.subagents import SubagentRegistry, TaskToolInput
from agentledger.workitems import WorkItemStore

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(autouse=True)
def _fresh_config() -> Iterator[None]:
    """Keep the cached global config from leaking between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def registry() -> SubagentRegistry:
    return SubagentRegistry()


@pytest.fixture
def task_input() -> TaskToolInput:
    return TaskToolInput(
        description="Find auth code",
        prompt="Locate the login handler",
        subagent_type="Explore",
    )


@pytest.fixture
def store(tmp_path: Path) -> Iterator[WorkItemStore]:
    work_items = WorkItemStore("list-1", base_path=tmp_path, poll_interval=0.05)
    yield work_items
    work_items.close()
