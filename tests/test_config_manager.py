"""
Tests for configuration loading: file values, environment overrides and
the derived ingestion settings.
"""

import json

import pytest

from overtime_backend import config_manager
from overtime_backend.config_manager import (
    DEFAULT_CONFIG,
    IngestConfig,
    apply_environment_overrides,
    build_ingest_config,
    get_config,
    load_config,
    reset_config,
)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Point the config search at a single file under tmp_path."""
    path = tmp_path / "config.json"
    monkeypatch.setattr(config_manager, "get_config_paths", lambda: [path])
    for env_key, _ in config_manager.ENV_MAPPINGS.values():
        monkeypatch.delenv(env_key, raising=False)
    reset_config()
    yield path
    reset_config()


class TestLoadConfig:
    def test_defaults_without_file(self, config_file):
        config = load_config()
        assert config["database_path"] == DEFAULT_CONFIG["database_path"]
        assert config["default_buffer_hours"] == 17.0

    def test_file_values_merged(self, config_file):
        config_file.write_text(json.dumps({"_comment": "x", "page_size": 50, "default_year": 2023}))
        config = load_config()
        assert config["page_size"] == 50
        assert config["default_year"] == 2023
        assert config["_comment"] == DEFAULT_CONFIG["_comment"]
        assert config["record_batch_size"] == 500

    def test_broken_file_falls_back_to_defaults(self, config_file):
        config_file.write_text("{not json")
        assert load_config()["page_size"] == DEFAULT_CONFIG["page_size"]


class TestEnvironmentOverrides:
    def test_env_wins(self, config_file, monkeypatch):
        config_file.write_text(json.dumps({"default_buffer_hours": 12}))
        monkeypatch.setenv("OVERTIME_DEFAULT_BUFFER_HOURS", "20.5")
        monkeypatch.setenv("OVERTIME_DB_PATH", "/tmp/other.db")

        config = get_config()

        assert config["default_buffer_hours"] == 20.5
        assert config["database_path"] == "/tmp/other.db"

    def test_invalid_value_ignored(self, monkeypatch):
        monkeypatch.setenv("SERVER_PORT", "eighty")
        config = {"server_port": 8000}
        apply_environment_overrides(config)
        assert config["server_port"] == 8000

    def test_config_is_cached_until_reset(self, config_file, monkeypatch):
        first = get_config()
        assert get_config() is first
        monkeypatch.setenv("OVERTIME_LOG_LEVEL", "DEBUG")
        reset_config()
        assert get_config()["log_level"] == "DEBUG"


class TestIngestConfig:
    def test_from_config_dict(self):
        settings = build_ingest_config({"default_buffer_hours": "15", "default_year": 2022, "header_scan_rows": 5})
        assert settings == IngestConfig(default_buffer_hours=15.0, default_year=2022, header_scan_rows=5)

    def test_missing_year_means_current(self):
        assert build_ingest_config({"default_year": None}).default_year is None
