"""Configuration schema dataclasses for agentledger.

All fields have defaults so partial configs merge cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class PersistenceConfig:
    """Subagent snapshot persistence.

    Example config.yaml:
        persistence:
          path: ~/.agentledger/task-state.json
          auto_save: true
          auto_save_interval: 30
          max_task_age_ms: 86400000
    """

    path: str | None = None  # Snapshot file; default under the user data dir
    auto_save: bool = True
    auto_save_interval: float = 30.0  # Seconds between dirty checks
    max_task_age_ms: int = 24 * 60 * 60 * 1000  # Retention cutoff on load/cleanup


@dataclass
class WorkItemConfig:
    """Work-item store configuration."""

    base_path: str | None = None  # Parent of the per-list directories
    poll_interval: float = 1.0  # Seconds between directory polls in watch()


@dataclass
class Config:
    """Root configuration object."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    work_items: WorkItemConfig = field(default_factory=WorkItemConfig)
    extra: dict[str, Any] = field(default_factory=dict)  # Unknown top-level keys
