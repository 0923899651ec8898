"""
Configuration Manager for the Overtime Counter backend

Handles loading configuration from user-accessible config files and the
environment, so deployments can be configured without modifying code.

Config file locations (checked in order):
1. ./config.json (current working directory)
2. ~/.config/overtime-counter/config.json
3. config.json next to the package (development)

Environment variables (a .env file is honoured) override file values.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .logic.constants import DEFAULT_BUFFER_HOURS, HEADER_SCAN_MAX_ROWS

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CONFIG = {
    "_comment": "Overtime Counter Configuration - Edit this file to configure the application",
    "database_path": "overtime_counter.db",
    "log_level": "INFO",
    "log_to_file": True,
    "default_buffer_hours": DEFAULT_BUFFER_HOURS,
    "default_year": None,
    "header_scan_rows": HEADER_SCAN_MAX_ROWS,
    "page_size": 1000,
    "driver_batch_size": 100,
    "record_batch_size": 500,
    "server_port": 8000,
}

# config key -> (environment variable, converter)
ENV_MAPPINGS = {
    "database_path": ("OVERTIME_DB_PATH", str),
    "log_level": ("OVERTIME_LOG_LEVEL", str),
    "default_buffer_hours": ("OVERTIME_DEFAULT_BUFFER_HOURS", float),
    "default_year": ("OVERTIME_DEFAULT_YEAR", int),
    "server_port": ("SERVER_PORT", int),
}


@dataclass(frozen=True)
class IngestConfig:
    """
    Explicit settings injected into workbook ingestion.

    default_year=None means "current calendar year" when a sheet's year
    cannot be read from its name.
    """
    default_buffer_hours: float = DEFAULT_BUFFER_HOURS
    default_year: Optional[int] = None
    header_scan_rows: int = HEADER_SCAN_MAX_ROWS


def get_config_paths() -> list[Path]:
    """Get list of possible config file locations, in priority order."""
    return [
        Path.cwd() / "config.json",
        Path.home() / ".config" / "overtime-counter" / "config.json",
        Path(__file__).parent.parent / "config.json",
    ]


def find_config_file() -> Optional[Path]:
    """Find the first existing config file."""
    for path in get_config_paths():
        if path.exists():
            logger.info(f"Found config file: {path}")
            return path
    return None


def load_config() -> Dict[str, Any]:
    """
    Load configuration from file.
    Returns merged config (file + defaults); a missing file means defaults.
    """
    config = DEFAULT_CONFIG.copy()

    config_path = find_config_file()
    if config_path is None:
        logger.debug("No config file found, using defaults")
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            file_config = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Error loading config from {config_path}: {e}")
        return config

    for key, value in file_config.items():
        if not key.startswith("_"):  # Skip comments
            config[key] = value

    logger.info(f"Loaded config from: {config_path}")
    return config


def apply_environment_overrides(config: Dict[str, Any]) -> None:
    """
    Apply environment variables on top of the file config.
    Env vars take precedence; malformed values are ignored with a warning.
    """
    for config_key, (env_key, convert) in ENV_MAPPINGS.items():
        raw = os.environ.get(env_key)
        if not raw:
            continue
        try:
            config[config_key] = convert(raw)
            logger.debug(f"Set {config_key} from {env_key}")
        except ValueError:
            logger.warning(f"Ignoring invalid {env_key}={raw!r}")


def initialize_config() -> Dict[str, Any]:
    """
    Main entry point - load .env, config file and environment.
    Call this early in application startup.
    """
    load_dotenv()
    config = load_config()
    apply_environment_overrides(config)
    logger.info(
        f"Config initialized - database: {config['database_path']}, "
        f"default buffer: {config['default_buffer_hours']}h"
    )
    return config


# Singleton config instance
_config: Optional[Dict[str, Any]] = None


def get_config() -> Dict[str, Any]:
    """Get the current config (loads if not already loaded)."""
    global _config
    if _config is None:
        _config = initialize_config()
    return _config


def reset_config() -> None:
    """Forget the cached config (tests change env vars between cases)."""
    global _config
    _config = None


def build_ingest_config(config: Optional[Dict[str, Any]] = None) -> IngestConfig:
    """Derive the ingestion settings from an application config dict."""
    config = config if config is not None else get_config()
    default_year = config.get("default_year")
    return IngestConfig(
        default_buffer_hours=float(config.get("default_buffer_hours", DEFAULT_BUFFER_HOURS)),
        default_year=int(default_year) if default_year else None,
        header_scan_rows=int(config.get("header_scan_rows", HEADER_SCAN_MAX_ROWS)),
    )
