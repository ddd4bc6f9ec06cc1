"""Configuration and data path resolution.

Handles locations for:
- User config: $XDG_CONFIG_HOME/agentledger/, ~/.config/agentledger/ or ~/.agentledger/
- Project config: $project_root/.agentledger/
- Data: ~/.agentledger/ (snapshot file and work-item lists)
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

CONFIG_FILENAME = "config.yaml"
APP_NAME = "agentledger"
SHORT_NAME = ".agentledger"
STATE_FILENAME = "task-state.json"
TASKS_DIRNAME = "tasks"


def get_user_config_path() -> Path | None:
    """Get user-level config path.

    Returns:
        Path to user config file, or None if not determinable.
        The file may not exist.
    """
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / APP_NAME / CONFIG_FILENAME
        return None

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME / CONFIG_FILENAME

    home = Path.home()
    xdg_default = home / ".config"
    if xdg_default.exists():
        return xdg_default / APP_NAME / CONFIG_FILENAME

    return home / SHORT_NAME / CONFIG_FILENAME


def get_project_config_path(project_root: str) -> Path:
    """Get project-level config path (may not exist)."""
    return Path(project_root) / SHORT_NAME / CONFIG_FILENAME


def get_config_paths(project_root: str | None = None) -> list[Path]:
    """Get all config paths in priority order (lowest to highest)."""
    paths: list[Path] = []

    user_path = get_user_config_path()
    if user_path:
        paths.append(user_path)

    if project_root:
        paths.append(get_project_config_path(project_root))

    return paths


def get_data_dir() -> Path:
    """Directory holding persisted state (~/.agentledger)."""
    return Path.home() / SHORT_NAME


def get_default_state_path() -> Path:
    """Default subagent snapshot file."""
    return get_data_dir() / STATE_FILENAME


def get_default_tasks_dir() -> Path:
    """Default parent directory for work-item lists."""
    return get_data_dir() / TASKS_DIRNAME
