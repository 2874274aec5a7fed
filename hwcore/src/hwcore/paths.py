"""
Shared path utilities for hwscan data directories.
"""

from __future__ import annotations

import os
from pathlib import Path

DATA_DIR_ENV = "HWSCAN_DATA_DIR"
CONFIG_FILE_ENV = "HWSCAN_CONFIG_FILE"


def resolve_data_dir() -> Path:
    """Return $HWSCAN_DATA_DIR or ~/.hwscan without touching the filesystem."""
    env_path = os.getenv(DATA_DIR_ENV)
    return Path(env_path) if env_path else Path.home() / ".hwscan"


def get_default_data_dir() -> Path:
    """
    Get the default hwscan data directory.

    Returns ~/.hwscan or $HWSCAN_DATA_DIR if set.
    Creates the directory if it doesn't exist.
    """
    data_dir = resolve_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_config_file_path() -> Path:
    """
    Get the config file location.

    $HWSCAN_CONFIG_FILE wins over the data directory default.
    """
    env_path = os.getenv(CONFIG_FILE_ENV)
    if env_path:
        return Path(env_path)
    return resolve_data_dir() / "config.toml"
