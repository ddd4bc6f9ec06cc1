"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Deep merging of the config cascade
- Environment variable overrides
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from agentledger.config.paths import get_config_paths
from agentledger.config.schema import (
    Config,
    LoggingConfig,
    PersistenceConfig,
    WorkItemConfig,
)
from agentledger.logging import LOG_ENV_VAR, get_logger

_log = get_logger("config")

STATE_PATH_ENV_VAR = "AGENTLEDGER_STATE_PATH"
TASKS_DIR_ENV_VAR = "AGENTLEDGER_TASKS_DIR"

_cached_config: Config | None = None


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``.

    Nested dicts merge recursively, lists are replaced whole, and None in
    ``override`` never replaces a base value.
    """
    result = base.copy()

    for key, value in override.items():
        if value is None:
            continue
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value

    return result


def env_overrides() -> dict[str, Any]:
    """Build config dict from environment variables."""
    overrides: dict[str, Any] = {}

    log_path = os.environ.get(LOG_ENV_VAR)
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    state_path = os.environ.get(STATE_PATH_ENV_VAR)
    if state_path:
        overrides.setdefault("persistence", {})["path"] = state_path

    tasks_dir = os.environ.get(TASKS_DIR_ENV_VAR)
    if tasks_dir:
        overrides.setdefault("work_items", {})["base_path"] = tasks_dir

    return overrides


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert merged dict to typed Config dataclass."""
    log_data = data.get("logging") or {}
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    persist_data = data.get("persistence") or {}
    defaults = PersistenceConfig()
    persistence = PersistenceConfig(
        path=persist_data.get("path"),
        auto_save=bool(persist_data.get("auto_save", defaults.auto_save)),
        auto_save_interval=float(
            persist_data.get("auto_save_interval", defaults.auto_save_interval)
        ),
        max_task_age_ms=int(persist_data.get("max_task_age_ms", defaults.max_task_age_ms)),
    )

    items_data = data.get("work_items") or {}
    work_items = WorkItemConfig(
        base_path=items_data.get("base_path"),
        poll_interval=float(items_data.get("poll_interval", WorkItemConfig.poll_interval)),
    )

    known_keys = {"logging", "persistence", "work_items"}
    extra = {k: v for k, v in data.items() if k not in known_keys}

    return Config(
        logging=logging_config,
        persistence=persistence,
        work_items=work_items,
        extra=extra,
    )


def load_config(project_root: str | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config ($project_root/.agentledger/config.yaml)
    3. User config

    Args:
        project_root: Project directory for project-level config.
        reload: Force reload even if cached.

    Returns:
        Merged Config object.
    """
    global _cached_config

    if _cached_config is not None and not reload and project_root is None:
        return _cached_config

    merged: dict[str, Any] = {}
    for path in get_config_paths(project_root):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            merged = deep_merge(merged, config_data)

    merged = deep_merge(merged, env_overrides())
    config = dict_to_config(merged)

    # Only the global config is cached
    if project_root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Drop the cached config."""
    global _cached_config
    _cached_config = None
