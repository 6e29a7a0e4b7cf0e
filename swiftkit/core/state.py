"""
Persisted swiftkit state.

The whole state of an installation is one JSON record, ``config.json`` in the
home directory:

    {
      "inUse": "5.10.1",
      "installedToolchains": ["5.9.2", "5.10.1", "main-snapshot-2024-01-20"],
      "platform": {"name": "ubuntu2204", "nameFull": "ubuntu22.04",
                   "namePretty": "Ubuntu 22.04", "architecture": "x86_64"},
      "version": "0.1.0"
    }

Every mutation is a full load, in-memory change and atomic save. StateStore
does not lock by itself; callers that mutate wrap ``update`` in the state lock
(see swiftkit.core.locking). Reads for display may skip the lock.

Example:
    >>> store = StateStore()
    >>> with lock_manager.state_lock():
    ...     store.update(lambda config: config.installed_toolchains.add(version))
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set

from packaging.version import InvalidVersion, Version

from swiftkit import __version__
from swiftkit.core.directory import get_config_file
from swiftkit.core.exceptions import SelectorParseError, StateCorruptionError
from swiftkit.core.filesystem import atomic_write
from swiftkit.core.platform import PlatformDefinition
from swiftkit.toolchain.version import ToolchainVersion, parse_version

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """
    The persisted configuration record.

    Attributes:
        in_use: Global default toolchain, if any
        installed_toolchains: Installed toolchains, unique by identity
        platform: Platform the installation targets
        version: Tool version that last wrote the record
    """

    platform: PlatformDefinition
    in_use: Optional[ToolchainVersion] = None
    installed_toolchains: Set[ToolchainVersion] = field(default_factory=set)
    version: Optional[Version] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: Dict[str, Any] = {}
        if self.in_use is not None:
            data["inUse"] = self.in_use.name
        data["installedToolchains"] = [
            toolchain.name for toolchain in sorted(self.installed_toolchains)
        ]
        data["platform"] = self.platform.to_dict()
        if self.version is not None:
            data["version"] = str(self.version)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """
        Build a Config from its JSON representation.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        if not isinstance(data, dict):
            raise TypeError("top level value is not an object")

        in_use = data.get("inUse")
        installed = data.get("installedToolchains", [])
        if not isinstance(installed, list):
            raise TypeError("installedToolchains is not a list")

        version = data.get("version")
        return cls(
            platform=PlatformDefinition.from_dict(data["platform"]),
            in_use=parse_version(in_use) if in_use else None,
            installed_toolchains={parse_version(name) for name in installed},
            version=Version(version) if version else None,
        )


class StateStore:
    """
    Loads and saves the configuration record.

    Attributes:
        config_file: Path to config.json
    """

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else get_config_file()

    def exists(self) -> bool:
        return self.config_file.exists()

    def load(self) -> Config:
        """
        Load the record from disk.

        Returns:
            The current Config

        Raises:
            StateCorruptionError: If the file is missing, unreadable or malformed
        """
        try:
            text = self.config_file.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise StateCorruptionError(self.config_file, "file does not exist") from e
        except OSError as e:
            raise StateCorruptionError(self.config_file, str(e)) from e

        try:
            config = Config.from_dict(json.loads(text))
        except (
            json.JSONDecodeError,
            KeyError,
            TypeError,
            ValueError,
            InvalidVersion,
            SelectorParseError,
        ) as e:
            raise StateCorruptionError(self.config_file, str(e)) from e

        self._check_version(config)
        logger.debug(f"Loaded config from {self.config_file}")
        return config

    def save(self, config: Config) -> None:
        """
        Save the record atomically.

        A record without a tool version, or written by an older one, is stamped
        with the running version.
        """
        current = Version(__version__)
        if config.version is None or config.version < current:
            config.version = current

        content = json.dumps(config.to_dict(), indent=2) + "\n"
        atomic_write(self.config_file, content)
        logger.debug(f"Saved config to {self.config_file}")

    def update(self, mutator: Callable[[Config], None]) -> Config:
        """
        Load, apply ``mutator`` and save.

        Nothing is written if ``mutator`` raises; the exception propagates.
        Must be called with the state lock held.

        Returns:
            The saved Config
        """
        config = self.load()
        mutator(config)
        self.save(config)
        return config

    def create(self, platform: PlatformDefinition, overwrite: bool = False) -> Config:
        """
        Write a fresh record: nothing installed, no default.

        Args:
            platform: Platform the installation targets
            overwrite: Replace an existing record

        Raises:
            FileExistsError: If a record exists and overwrite is False
        """
        if self.exists() and not overwrite:
            raise FileExistsError(f"Configuration already exists: {self.config_file}")

        config = Config(platform=platform)
        self.save(config)
        logger.debug(f"Created config at {self.config_file}")
        return config

    def _check_version(self, config: Config) -> None:
        if config.version is None:
            logger.debug("Config has no tool version, it will be stamped on save")
            return
        if config.version > Version(__version__):
            logger.warning(
                f"{self.config_file} was written by swiftkit {config.version}, "
                f"newer than this swiftkit ({__version__})"
            )


__all__ = ["Config", "StateStore"]
