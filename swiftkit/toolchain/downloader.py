"""
Toolchain archive downloads from download.swift.org.

Archive URLs follow the swift.org layout:

    release           <base>/swift-5.10.1-release/ubuntu2204/swift-5.10.1-RELEASE/
                          swift-5.10.1-RELEASE-ubuntu22.04.tar.gz
    main snapshot     <base>/development/ubuntu2204/swift-DEVELOPMENT-SNAPSHOT-2024-01-20-a/
                          swift-DEVELOPMENT-SNAPSHOT-2024-01-20-a-ubuntu22.04.tar.gz
    release snapshot  <base>/swift-5.10-branch/ubuntu2204/swift-5.10-DEVELOPMENT-SNAPSHOT-2024-01-20-a/
                          swift-5.10-DEVELOPMENT-SNAPSHOT-2024-01-20-a-ubuntu22.04.tar.gz

aarch64 Linux builds add ``-aarch64`` to the platform directory and file name.
macOS packages live under ``xcode`` and end in ``-osx.pkg``.

Downloads run outside the state lock; a per-version download lock keeps two
processes from fetching the same archive at once.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from swiftkit.core.directory import get_downloads_dir
from swiftkit.core.download import DownloadProgress, download_file
from swiftkit.core.locking import LockManager
from swiftkit.core.platform import PlatformDefinition
from swiftkit.toolchain.version import ReleaseBranch, StableRelease, ToolchainVersion

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_BASE_URL = "https://download.swift.org"


def toolchain_tag(version: ToolchainVersion) -> str:
    """
    Return the swift.org tag of a toolchain.

    Example:
        >>> toolchain_tag(StableRelease(5, 10, 0))
        'swift-5.10-RELEASE'
    """
    if isinstance(version, StableRelease):
        number = version.name
        if version.patch == 0:
            number = f"{version.major}.{version.minor}"
        return f"swift-{number}-RELEASE"
    if isinstance(version.branch, ReleaseBranch):
        return f"swift-{version.branch.name}-DEVELOPMENT-SNAPSHOT-{version.date}-a"
    return f"swift-DEVELOPMENT-SNAPSHOT-{version.date}-a"


def archive_file_name(
    version: ToolchainVersion, platform: PlatformDefinition, extension: str
) -> str:
    """Return the file name of a toolchain archive."""
    tag = toolchain_tag(version)
    if platform.is_macos():
        return f"{tag}-osx.{extension}"
    suffix = "-aarch64" if platform.get_architecture() == "aarch64" else ""
    return f"{tag}-{platform.name_full}{suffix}.{extension}"


def archive_url(
    version: ToolchainVersion,
    platform: PlatformDefinition,
    extension: str,
    base_url: str = DEFAULT_DOWNLOAD_BASE_URL,
) -> str:
    """
    Build the download URL of a toolchain archive.

    Args:
        version: Toolchain to download
        platform: Target platform
        extension: Archive extension ("tar.gz" or "pkg")
        base_url: Download server

    Returns:
        Absolute URL
    """
    if isinstance(version, StableRelease):
        number = toolchain_tag(version)[len("swift-") : -len("-RELEASE")]
        category = f"swift-{number}-release"
    elif isinstance(version.branch, ReleaseBranch):
        category = f"swift-{version.branch.name}-branch"
    else:
        category = "development"

    if platform.is_macos():
        platform_dir = "xcode"
    else:
        platform_dir = platform.name
        if platform.get_architecture() == "aarch64":
            platform_dir += "-aarch64"

    tag = toolchain_tag(version)
    file_name = archive_file_name(version, platform, extension)
    return f"{base_url.rstrip('/')}/{category}/{platform_dir}/{tag}/{file_name}"


class ToolchainDownloader:
    """
    Downloads toolchain archives into the downloads directory.

    Attributes:
        downloads_dir: Where archives are stored
        base_url: Download server
    """

    def __init__(
        self,
        lock_manager: LockManager,
        downloads_dir: Optional[Path] = None,
        base_url: str = DEFAULT_DOWNLOAD_BASE_URL,
        timeout: int = 30,
        max_retries: int = 3,
    ):
        self.lock_manager = lock_manager
        self.downloads_dir = Path(downloads_dir) if downloads_dir else get_downloads_dir()
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries

    def download(
        self,
        version: ToolchainVersion,
        platform: PlatformDefinition,
        extension: str,
        progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    ) -> Path:
        """
        Download the archive of ``version``, reusing a completed earlier download.

        Returns:
            Path to the archive

        Raises:
            DownloadError: If the download fails
            LockTimeoutError: If another process holds the download lock too long
        """
        destination = self.downloads_dir / archive_file_name(version, platform, extension)
        url = archive_url(version, platform, extension, self.base_url)

        with self.lock_manager.download_lock(version.name):
            if destination.exists():
                logger.info(f"Using previously downloaded {destination.name}")
                return destination

            logger.info(f"Downloading {version}")
            return download_file(
                url,
                destination,
                progress_callback=progress_callback,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )

    def discard(self, archive: Path) -> None:
        """Delete a downloaded archive once it has been installed."""
        try:
            Path(archive).unlink()
            logger.debug(f"Removed archive {archive}")
        except FileNotFoundError:
            pass


__all__ = [
    "DEFAULT_DOWNLOAD_BASE_URL",
    "toolchain_tag",
    "archive_file_name",
    "archive_url",
    "ToolchainDownloader",
]
