"""Unit tests for configuration module."""

import os
from pathlib import Path
from unittest.mock import patch

import tomli_w

from todo_replica.config import (
    Settings,
    flatten_toml_config,
    get_config_path,
    get_default_config,
    get_settings,
    load_settings_with_toml,
    load_toml_config,
)
from todo_replica.models import Priority, ProjectColor


class TestSettings:
    """Tests for Settings class."""

    def test_default_values(self) -> None:
        """Test default configuration values."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()

            assert settings.log_level == "INFO"
            assert settings.log_format == "json"
            assert settings.log_file is None
            assert settings.reorder_persist_siblings is True
            assert settings.refresh_on_stale is True
            assert settings.default_priority == Priority.LOW
            assert settings.default_project_color is ProjectColor.GRAY

    def test_environment_override(self) -> None:
        """Test environment variable override."""
        with patch.dict(
            os.environ,
            {
                "TODO_REPLICA_LOG_LEVEL": "DEBUG",
                "TODO_REPLICA_REORDER_PERSIST_SIBLINGS": "false",
            },
            clear=True,
        ):
            settings = Settings()

            assert settings.log_level == "DEBUG"
            assert settings.reorder_persist_siblings is False

    def test_database_path_expands_home(self) -> None:
        """Test the database path is expanded."""
        settings = Settings(database_path="~/replica.db")

        assert settings.resolved_database_path == Path.home() / "replica.db"


class TestTomlConfig:
    """Tests for TOML loading and flattening."""

    def test_config_path_honours_xdg(self, tmp_path: Path) -> None:
        with patch.dict(os.environ, {"XDG_CONFIG_HOME": str(tmp_path)}):
            assert get_config_path() == tmp_path / "todo-replica" / "config.toml"

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert load_toml_config(tmp_path / "absent.toml") == {}

    def test_flatten_sections(self) -> None:
        overrides = flatten_toml_config(
            {
                "store": {"path": "/tmp/store.db"},
                "logging": {"level": "WARNING", "format": "console"},
                "sync": {"reorder_persist_siblings": False},
                "defaults": {"priority": 1, "project_color": "#3399ff"},
                "unknown": {"key": "ignored"},
            }
        )

        assert overrides == {
            "database_path": "/tmp/store.db",
            "log_level": "WARNING",
            "log_format": "console",
            "reorder_persist_siblings": False,
            "default_priority": 1,
            "default_project_color": "#3399ff",
        }

    def test_default_config_round_trips_into_settings(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_bytes(tomli_w.dumps(get_default_config()).encode())

        with patch.dict(os.environ, {}, clear=True):
            settings = load_settings_with_toml(path)

        assert settings.log_format == "console"
        assert settings.default_priority == Priority.LOW
        assert settings.default_project_color is ProjectColor.GRAY

    def test_precedence_cli_over_env_over_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_bytes(
            tomli_w.dumps({"logging": {"level": "ERROR"}, "store": {"path": "toml.db"}}).encode()
        )

        with patch.dict(os.environ, {"TODO_REPLICA_LOG_LEVEL": "WARNING"}, clear=True):
            settings = load_settings_with_toml(path, database_path="cli.db", log_level=None)

        assert settings.log_level == "WARNING"
        assert settings.database_path == "cli.db"


class TestGetSettings:
    """Tests for get_settings function."""

    def test_returns_cached_instance(self) -> None:
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
            assert isinstance(get_settings(), Settings)
        finally:
            get_settings.cache_clear()
