"""
Directory structure management for swiftkit.

Directory Structure:
    Home (~/.swiftkit/, relocatable with SWIFTKIT_HOME_DIR):
        - config.json     : Installed toolchains, global default, platform
        - settings.yaml   : Optional user settings
        - swiftkit.lock   : Mutual exclusion for config.json mutations
        - bin/            : Proxy links (SWIFTKIT_BIN_DIR)
        - toolchains/     : Installed toolchains (SWIFTKIT_TOOLCHAINS_DIR)
        - downloads/      : Downloaded archives and per-version download locks

    Project:
        - .swift-version  : Version marker pinning the toolchain for a tree
"""

import logging
import os
from pathlib import Path

from swiftkit.core.exceptions import SwiftkitError

logger = logging.getLogger(__name__)

VERSION_FILE_NAME = ".swift-version"
CONFIG_FILE_NAME = "config.json"
SETTINGS_FILE_NAME = "settings.yaml"
LOCK_FILE_NAME = "swiftkit.lock"


class DirectoryError(SwiftkitError):
    """Base exception for directory-related errors."""

    pass


def get_home_dir() -> Path:
    """
    Get the swiftkit home directory.

    Returns:
        Path: $SWIFTKIT_HOME_DIR if set, otherwise ~/.swiftkit
    """
    override = os.environ.get("SWIFTKIT_HOME_DIR")
    if override:
        return Path(override)
    return Path.home() / ".swiftkit"


def get_bin_dir() -> Path:
    """Directory holding the proxy links, removed from PATH when proxying."""
    override = os.environ.get("SWIFTKIT_BIN_DIR")
    if override:
        return Path(override)
    return get_home_dir() / "bin"


def get_toolchains_dir() -> Path:
    """Directory where toolchains are installed, one subdirectory per version."""
    override = os.environ.get("SWIFTKIT_TOOLCHAINS_DIR")
    if override:
        return Path(override)
    return get_home_dir() / "toolchains"


def get_downloads_dir() -> Path:
    return get_home_dir() / "downloads"


def get_config_file() -> Path:
    return get_home_dir() / CONFIG_FILE_NAME


def get_settings_file() -> Path:
    return get_home_dir() / SETTINGS_FILE_NAME


def get_lock_file() -> Path:
    return get_home_dir() / LOCK_FILE_NAME


def ensure_home_structure() -> Path:
    """
    Create the home directory and its subdirectories.

    Returns:
        Path to the home directory

    Raises:
        DirectoryError: If a directory cannot be created
    """
    home = get_home_dir()
    for directory in (home, get_bin_dir(), get_toolchains_dir(), get_downloads_dir()):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryError(f"Could not create directory {directory}: {e}") from e
        logger.debug(f"Ensured directory exists: {directory}")
    return home


__all__ = [
    "VERSION_FILE_NAME",
    "CONFIG_FILE_NAME",
    "SETTINGS_FILE_NAME",
    "LOCK_FILE_NAME",
    "DirectoryError",
    "get_home_dir",
    "get_bin_dir",
    "get_toolchains_dir",
    "get_downloads_dir",
    "get_config_file",
    "get_settings_file",
    "get_lock_file",
    "ensure_home_structure",
]
