"""
Platform detection for swiftkit.

Toolchains are published per platform, so the persisted config records which
platform the installation targets. This module turns the running system into
a PlatformDefinition whose names match the swift.org download layout.

Usage:
    from swiftkit.core.platform import detect_platform

    platform_def = detect_platform()
    print(platform_def.name_pretty)  # "Ubuntu 22.04"
"""

import functools
import logging
import platform
from dataclasses import dataclass
from typing import Any, Dict, Optional

import distro

from swiftkit.core.exceptions import UnsupportedPlatformError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformDefinition:
    """
    A platform toolchains are built for.

    Attributes:
        name: Name used in download URLs (e.g. 'ubuntu2204', 'xcode')
        name_full: Full name used in archive names (e.g. 'ubuntu22.04')
        name_pretty: Human readable name (e.g. 'Ubuntu 22.04')
        architecture: CPU architecture ('x86_64' or 'aarch64'), None means x86_64
    """

    name: str
    name_full: str
    name_pretty: str
    architecture: Optional[str] = None

    def get_architecture(self) -> str:
        return self.architecture or "x86_64"

    def is_macos(self) -> bool:
        return self.name == MACOS.name

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "nameFull": self.name_full,
            "namePretty": self.name_pretty,
        }
        if self.architecture is not None:
            data["architecture"] = self.architecture
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlatformDefinition":
        return cls(
            name=data["name"],
            name_full=data["nameFull"],
            name_pretty=data["namePretty"],
            architecture=data.get("architecture"),
        )


MACOS = PlatformDefinition("xcode", "osx", "macOS")

# distro id -> {version: (name, name_full, name_pretty)}
_LINUX_PLATFORMS = {
    "ubuntu": {
        "18.04": ("ubuntu1804", "ubuntu18.04", "Ubuntu 18.04"),
        "20.04": ("ubuntu2004", "ubuntu20.04", "Ubuntu 20.04"),
        "22.04": ("ubuntu2204", "ubuntu22.04", "Ubuntu 22.04"),
        "24.04": ("ubuntu2404", "ubuntu24.04", "Ubuntu 24.04"),
    },
    "debian": {
        "12": ("debian12", "debian12", "Debian 12"),
    },
    "fedora": {
        "39": ("fedora39", "fedora39", "Fedora 39"),
    },
    "amzn": {
        "2": ("amazonlinux2", "amazonlinux2", "Amazon Linux 2"),
    },
    "rhel": {
        "9": ("ubi9", "ubi9", "RHEL 9"),
    },
}


def _detect_architecture() -> str:
    machine = platform.machine().lower()
    if machine in ("x86_64", "amd64", "x64"):
        return "x86_64"
    if machine in ("aarch64", "arm64"):
        return "aarch64"
    raise UnsupportedPlatformError(f"Unsupported CPU architecture: {machine}")


def _detect_linux() -> PlatformDefinition:
    distro_id = distro.id()
    major, minor, _ = distro.version_parts()

    versions = _LINUX_PLATFORMS.get(distro_id)
    if versions is None:
        raise UnsupportedPlatformError(
            f"Unsupported Linux distribution: {distro.name(pretty=True) or distro_id}"
        )

    # Ubuntu is keyed by major.minor, the rest by major only
    key = f"{major}.{minor}" if distro_id == "ubuntu" else major
    entry = versions.get(key)
    if entry is None:
        raise UnsupportedPlatformError(
            f"Unsupported {distro_id} release: {distro.version()}"
        )

    name, name_full, name_pretty = entry
    return PlatformDefinition(name, name_full, name_pretty, _detect_architecture())


@functools.lru_cache(maxsize=1)
def detect_platform() -> PlatformDefinition:
    """
    Detect the platform of the running system.

    This function is cached - it only runs detection once per process.

    Returns:
        PlatformDefinition for the current system

    Raises:
        UnsupportedPlatformError: If no toolchains are published for it
    """
    system = platform.system().lower()

    if system == "darwin":
        definition = MACOS
    elif system == "linux":
        definition = _detect_linux()
    else:
        raise UnsupportedPlatformError(f"Unsupported operating system: {system}")

    logger.debug(f"Detected platform: {definition.name_pretty} ({definition.name})")
    return definition


def clear_platform_cache():
    """Clear the platform detection cache."""
    detect_platform.cache_clear()


__all__ = [
    "PlatformDefinition",
    "MACOS",
    "detect_platform",
    "clear_platform_cache",
]
