"""
Collaborator interfaces for swiftkit.

The orchestration code (install, use, update, uninstall, proxying) depends on
these interfaces only. Concrete implementations live in
``swiftkit.toolchain.platforms`` (one per OS, chosen once at start-up) and
``swiftkit.toolchain.catalog``; tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from swiftkit.core.platform import PlatformDefinition
from swiftkit.toolchain.version import Branch, Snapshot, StableRelease, ToolchainVersion


class Platform(ABC):
    """
    OS specific toolchain installation and execution.

    Implementations report failures as PlatformInstallError,
    PlatformUninstallError or ProxyError.
    """

    @property
    @abstractmethod
    def archive_extension(self) -> str:
        """File extension of downloadable toolchain archives (e.g. "tar.gz")."""
        pass

    @abstractmethod
    def stage(self, version: ToolchainVersion, archive: Path) -> Path:
        """
        Unpack a downloaded archive into a staging directory.

        This is the slow part of an install and must not need the state lock.

        Args:
            version: Toolchain being installed
            archive: Path to the downloaded archive

        Returns:
            The staging directory, to be passed to ``commit``
        """
        pass

    @abstractmethod
    def commit(self, version: ToolchainVersion, staged: Path) -> None:
        """Move a staged toolchain into its final location."""
        pass

    @abstractmethod
    def discard_staged(self, staged: Path) -> None:
        """Remove a staging directory; nothing happens if it was committed."""
        pass

    def install(self, version: ToolchainVersion, archive: Path) -> None:
        """Stage and commit in one step."""
        staged = self.stage(version, archive)
        try:
            self.commit(version, staged)
        finally:
            self.discard_staged(staged)

    @abstractmethod
    def uninstall(self, version: ToolchainVersion) -> None:
        """Remove an installed toolchain's files."""
        pass

    @abstractmethod
    def find_toolchain_location(self, version: ToolchainVersion) -> Path:
        """Return the root directory of an installed toolchain."""
        pass

    def find_bin_dir(self, version: ToolchainVersion) -> Path:
        """Return the directory holding the toolchain's executables."""
        return self.find_toolchain_location(version) / "usr" / "bin"

    @abstractmethod
    def proxy_exec(
        self,
        version: ToolchainVersion,
        command: Sequence[str],
        env: Dict[str, str],
    ) -> int:
        """
        Run a command from a toolchain in the foreground.

        Args:
            version: Toolchain the command belongs to
            command: Executable followed by its arguments
            env: Complete environment for the child

        Returns:
            The child's exit code
        """
        pass


class RemoteCatalog(ABC):
    """Discovery of toolchains available for download."""

    @abstractmethod
    def list_releases(
        self,
        platform: PlatformDefinition,
        filter: Optional[Callable[[StableRelease], bool]] = None,
        limit: Optional[int] = None,
    ) -> List[StableRelease]:
        """
        List stable releases published for a platform, newest first.

        Raises:
            RemoteCatalogError: If the catalog cannot be queried
        """
        pass

    @abstractmethod
    def list_snapshots(
        self,
        platform: PlatformDefinition,
        branch: Branch,
        filter: Optional[Callable[[Snapshot], bool]] = None,
        limit: Optional[int] = None,
    ) -> List[Snapshot]:
        """
        List snapshots published on a branch for a platform, newest first.

        Raises:
            SnapshotBranchNotFoundError: If no snapshots are published for branch
            RemoteCatalogError: If the catalog cannot be queried
        """
        pass


__all__ = ["Platform", "RemoteCatalog"]
