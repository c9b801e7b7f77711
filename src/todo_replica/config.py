"""Configuration management using pydantic-settings.

Configuration precedence:
1. CLI arguments (highest priority)
2. Environment variables (TODO_REPLICA_* prefix)
3. Global config file (~/.config/todo-replica/config.toml)
4. Built-in defaults (lowest priority)
"""

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from todo_replica.models import Priority, ProjectColor


def get_config_path() -> Path:
    """Get the global config file path (XDG compliant).

    Returns:
        Path to config file:
        - Linux/macOS: ~/.config/todo-replica/config.toml
        - Windows: %APPDATA%/todo-replica/config.toml
    """
    if os.name == "nt":  # Windows
        base = Path(os.environ.get("APPDATA", Path.home()))
    else:  # Linux/macOS
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "todo-replica" / "config.toml"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Environment variables use the TODO_REPLICA_ prefix:
    - TODO_REPLICA_DATABASE_PATH
    - TODO_REPLICA_LOG_LEVEL
    - TODO_REPLICA_REORDER_PERSIST_SIBLINGS
    etc.
    """

    model_config = SettingsConfigDict(
        env_prefix="TODO_REPLICA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Document store
    database_path: str = Field(
        default="~/.local/share/todo-replica/store.db",
        description="SQLite document store file used by the CLI",
    )

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="json",
        description="Log output format",
    )
    log_file: str | None = Field(default=None, description="Log file path (optional)")

    # Sync Configuration
    reorder_persist_siblings: bool = Field(
        default=True,
        description="Persist sibling order shifts together with the moved project",
    )
    refresh_on_stale: bool = Field(
        default=True,
        description="Run a full refresh when a confirmed write cannot be mirrored locally",
    )

    # Defaults for new entities
    default_priority: Priority = Field(default=Priority.LOW, description="Priority for new tasks")
    default_project_color: ProjectColor = Field(
        default=ProjectColor.GRAY,
        description="Color for new projects",
    )

    @property
    def resolved_database_path(self) -> Path:
        return Path(self.database_path).expanduser()


def load_toml_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration from TOML file.

    Args:
        path: Path to config file (uses default if None)

    Returns:
        Configuration dictionary (empty if file doesn't exist)
    """
    config_path = path or get_config_path()
    if config_path.exists():
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    return {}


# (section, key) in the TOML file -> Settings field
TOML_FIELDS: dict[tuple[str, str], str] = {
    ("store", "path"): "database_path",
    ("logging", "level"): "log_level",
    ("logging", "format"): "log_format",
    ("logging", "file"): "log_file",
    ("sync", "reorder_persist_siblings"): "reorder_persist_siblings",
    ("sync", "refresh_on_stale"): "refresh_on_stale",
    ("defaults", "priority"): "default_priority",
    ("defaults", "project_color"): "default_project_color",
}


def flatten_toml_config(toml_config: dict[str, Any]) -> dict[str, Any]:
    """Map nested TOML sections onto flat Settings field names.

    Unknown sections and keys are ignored.
    """
    overrides: dict[str, Any] = {}
    for (section, key), field in TOML_FIELDS.items():
        table = toml_config.get(section)
        if isinstance(table, dict) and key in table:
            overrides[field] = table[key]
    return overrides


def get_default_config() -> dict[str, Any]:
    """Default configuration written by ``init-config``."""
    return {
        "store": {
            "path": "~/.local/share/todo-replica/store.db",
        },
        "logging": {
            "level": "INFO",
            "format": "console",
        },
        "sync": {
            "reorder_persist_siblings": True,
            "refresh_on_stale": True,
        },
        "defaults": {
            "priority": int(Priority.LOW),
            "project_color": ProjectColor.GRAY.value,
        },
    }


def load_settings_with_toml(config_path: Path | None = None, **overrides: Any) -> Settings:
    """Load settings with TOML config as base, env vars as override.

    Keyword overrides (CLI arguments) win over everything else.

    Args:
        config_path: Optional path to TOML config file
        **overrides: Explicit values, typically from the command line

    Returns:
        Settings instance with merged configuration
    """
    toml_overrides = flatten_toml_config(load_toml_config(config_path))
    # Init kwargs beat env vars in pydantic-settings, so drop TOML keys that
    # the environment already provides.
    env_keys = {
        key.lower().removeprefix("todo_replica_")
        for key in os.environ
        if key.upper().startswith("TODO_REPLICA_")
    }
    merged = {k: v for k, v in toml_overrides.items() if k not in env_keys}
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**merged)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance (environment and defaults only).

    Returns:
        Settings instance (cached)
    """
    return Settings()
