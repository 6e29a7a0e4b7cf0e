"""
User settings for swiftkit.

Settings live in ``settings.yaml`` in the swiftkit home directory. The file is
optional; every key has a default. A few values can also be overridden from
the environment.

Example settings.yaml:
    lock_timeout: 120
    poll_interval: 0.5
    reclaim_stale_locks: true
    download_retries: 5
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from swiftkit.core.directory import get_settings_file
from swiftkit.core.exceptions import SettingsError

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """
    Tunables read from settings.yaml.

    Attributes:
        lock_timeout: Seconds to wait for the state lock
        poll_interval: Seconds between state lock attempts
        reclaim_stale_locks: Remove lock files left by dead processes
        api_base_url: Base URL of the swift.org install API
        download_base_url: Base URL toolchain archives are downloaded from
        request_timeout: HTTP timeout in seconds
        download_retries: Download attempts before giving up
        assume_yes: Skip confirmation prompts
    """

    lock_timeout: float = 300.0
    poll_interval: float = 1.0
    reclaim_stale_locks: bool = True
    api_base_url: str = "https://www.swift.org/api/v1"
    download_base_url: str = "https://download.swift.org"
    request_timeout: int = 30
    download_retries: int = 3
    assume_yes: bool = False


_TYPES = {
    "lock_timeout": (int, float),
    "poll_interval": (int, float),
    "reclaim_stale_locks": (bool,),
    "api_base_url": (str,),
    "download_base_url": (str,),
    "request_timeout": (int,),
    "download_retries": (int,),
    "assume_yes": (bool,),
}


def load_yaml_config(config_file: Path, required: bool = False) -> Dict[str, Any]:
    """
    Load and parse a YAML configuration file.

    Args:
        config_file: Path to YAML configuration file
        required: If True, raise error if file doesn't exist

    Returns:
        Configuration dictionary (empty dict if file doesn't exist and not required)

    Raises:
        FileNotFoundError: If required=True and file doesn't exist
        SettingsError: If YAML parsing fails or the document is not a mapping
    """
    if not config_file.exists():
        if required:
            raise FileNotFoundError(f"Configuration file not found: {config_file}")
        logger.debug(f"Config file not found (optional): {config_file}")
        return {}

    logger.debug(f"Loading settings from {config_file}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML: {e}")
        raise SettingsError(f"Invalid YAML in {config_file}: {e}") from e

    config = config or {}
    if not isinstance(config, dict):
        raise SettingsError(f"Expected a mapping at the top of {config_file}")
    return config


def _validate(key: str, value: Any) -> Any:
    expected = _TYPES[key]
    # bool is an int subclass; keep it out of numeric settings
    if isinstance(value, bool) and bool not in expected:
        raise SettingsError(f"Setting '{key}' must be a number, got {value!r}")
    if not isinstance(value, expected):
        names = " or ".join(t.__name__ for t in expected)
        raise SettingsError(f"Setting '{key}' must be {names}, got {value!r}")
    if key in ("lock_timeout", "poll_interval") and value < 0:
        raise SettingsError(f"Setting '{key}' must not be negative")
    return value


def load_settings(settings_file: Optional[Path] = None) -> Settings:
    """
    Load settings from YAML and apply environment overrides.

    Args:
        settings_file: Path to settings.yaml (default: in the home directory)

    Returns:
        Settings instance
    """
    settings_file = settings_file or get_settings_file()
    data = load_yaml_config(settings_file)

    known = {f.name for f in fields(Settings)}
    values = {}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Ignoring unknown setting '{key}' in {settings_file}")
            continue
        values[key] = _validate(key, value)

    settings = Settings(**values)

    env_timeout = os.environ.get("SWIFTKIT_LOCK_TIMEOUT")
    if env_timeout:
        try:
            settings.lock_timeout = float(env_timeout)
        except ValueError as e:
            raise SettingsError(
                f"SWIFTKIT_LOCK_TIMEOUT must be a number, got {env_timeout!r}"
            ) from e

    return settings


__all__ = ["Settings", "load_yaml_config", "load_settings"]
