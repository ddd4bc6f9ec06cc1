"""Configuration management for agentledger.

YAML-based configuration cascade:
- User-level config (~/.config/agentledger/ or ~/.agentledger/)
- Project-level config ($project_root/.agentledger/)
- Environment variable overrides (highest priority)

Example usage:
    from agentledger.config import load_config

    config = load_config(project_root="/path/to/project")
    print(config.persistence.auto_save_interval)
"""

from agentledger.config.loader import (
    deep_merge,
    get_config,
    load_config,
    reset_config,
)
from agentledger.config.paths import (
    get_config_paths,
    get_default_state_path,
    get_default_tasks_dir,
    get_project_config_path,
    get_user_config_path,
)
from agentledger.config.schema import (
    Config,
    LoggingConfig,
    PersistenceConfig,
    WorkItemConfig,
)

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    "deep_merge",
    "LoggingConfig",
    "PersistenceConfig",
    "WorkItemConfig",
    "get_config_paths",
    "get_user_config_path",
    "get_project_config_path",
    "get_default_state_path",
    "get_default_tasks_dir",
]
