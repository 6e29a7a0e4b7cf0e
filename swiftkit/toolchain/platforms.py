"""
Per-OS Platform implementations.

The implementation is chosen once, by ``get_current_platform()``; the rest of
swiftkit only talks to the Platform interface.

- LinuxPlatform installs ``.tar.gz`` archives, dropping the top-level
  ``swift-<tag>-<platform>`` directory.
- MacOSPlatform expands ``.pkg`` installers with ``pkgutil`` and unpacks the
  payload.

Both stage the payload in a temporary directory next to the destination and
rename it into place, so a toolchain directory only exists once complete.
"""

import functools
import logging
import os
import platform as host_platform
import signal
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Dict, Optional, Sequence

from swiftkit.core.directory import get_toolchains_dir
from swiftkit.core.exceptions import (
    PlatformInstallError,
    PlatformUninstallError,
    ProxyError,
    UnsupportedPlatformError,
)
from swiftkit.core.filesystem import (
    ArchiveExtractionError,
    FilesystemError,
    extract_tar_archive,
    safe_rmtree,
)
from swiftkit.core.interfaces import Platform
from swiftkit.toolchain.version import ToolchainVersion

logger = logging.getLogger(__name__)


# ============================================================================
# Foreground process execution
# ============================================================================


def _exit_code(returncode: int) -> int:
    # Killed by a signal: report it the way shells do
    if returncode < 0:
        return 128 - returncode
    return returncode


def _controlling_tty() -> Optional[int]:
    try:
        fd = sys.stdin.fileno()
    except (AttributeError, OSError, ValueError):
        return None
    return fd if os.isatty(fd) else None


def run_in_foreground(command: Sequence[str], env: Dict[str, str]) -> int:
    """
    Run a command, giving it the terminal while it runs.

    With a controlling terminal the child gets its own process group which
    becomes the terminal's foreground group, so Ctrl-C and Ctrl-Z reach the
    child and not swiftkit. The previous foreground group is restored after
    the child exits.

    Returns:
        The child's exit code (128 + signal number if it was killed)

    Raises:
        ProxyError: If the command cannot be started
    """
    tty_fd = _controlling_tty()
    command = [str(part) for part in command]
    logger.debug(f"Running {command}")

    if tty_fd is None:
        try:
            process = subprocess.Popen(command, env=env)
        except OSError as e:
            raise ProxyError(f"Unable to run {command[0]}: {e}") from e

        # The child shares our process group and receives SIGINT itself
        previous = signal.signal(signal.SIGINT, signal.SIG_IGN)
        try:
            return _exit_code(process.wait())
        finally:
            signal.signal(signal.SIGINT, previous)

    previous_group = os.tcgetpgrp(tty_fd)
    try:
        process = subprocess.Popen(command, env=env, preexec_fn=os.setpgrp)
    except OSError as e:
        raise ProxyError(f"Unable to run {command[0]}: {e}") from e

    # Background groups get SIGTTOU when they touch the terminal settings
    previous = signal.signal(signal.SIGTTOU, signal.SIG_IGN)
    try:
        try:
            os.setpgid(process.pid, process.pid)
        except OSError:
            pass  # already done by the child, or it already exited
        try:
            os.tcsetpgrp(tty_fd, process.pid)
        except OSError as e:
            logger.debug(f"Could not hand the terminal to {process.pid}: {e}")

        return _exit_code(process.wait())
    finally:
        try:
            os.tcsetpgrp(tty_fd, previous_group)
        except OSError as e:
            logger.debug(f"Could not restore the terminal foreground group: {e}")
        signal.signal(signal.SIGTTOU, previous)


# ============================================================================
# Platforms
# ============================================================================


class UnixPlatform(Platform):
    """
    Shared behaviour: one directory per toolchain under the toolchains dir.

    Attributes:
        toolchains_dir: Where toolchains are installed
    """

    def __init__(self, toolchains_dir: Optional[Path] = None):
        self.toolchains_dir = Path(toolchains_dir) if toolchains_dir else get_toolchains_dir()

    def find_toolchain_location(self, version: ToolchainVersion) -> Path:
        return self.toolchains_dir / version.name

    def stage(self, version: ToolchainVersion, archive: Path) -> Path:
        archive = Path(archive)
        if not archive.exists():
            raise PlatformInstallError(f"Archive not found: {archive}", version)

        self.toolchains_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(
            tempfile.mkdtemp(prefix=f".{version.name}.", dir=self.toolchains_dir)
        )

        try:
            logger.info(f"Extracting {archive.name}...")
            self._unpack(version, archive, staging)
        except (ArchiveExtractionError, FilesystemError, OSError) as e:
            self.discard_staged(staging)
            raise PlatformInstallError(
                f"Failed to install {version}: {e}", version
            ) from e
        except PlatformInstallError:
            self.discard_staged(staging)
            raise

        return staging

    def commit(self, version: ToolchainVersion, staged: Path) -> None:
        destination = self.find_toolchain_location(version)
        try:
            if destination.exists():
                logger.warning(f"Replacing leftover files in {destination}")
                safe_rmtree(destination, require_prefix=self.toolchains_dir)
            Path(staged).rename(destination)
        except (FilesystemError, OSError) as e:
            raise PlatformInstallError(
                f"Failed to install {version}: {e}", version
            ) from e

        logger.debug(f"Installed {version} into {destination}")

    def discard_staged(self, staged: Path) -> None:
        staged = Path(staged)
        if staged.exists():
            safe_rmtree(staged, require_prefix=self.toolchains_dir)

    def _unpack(self, version: ToolchainVersion, archive: Path, staging: Path) -> None:
        raise NotImplementedError

    def uninstall(self, version: ToolchainVersion) -> None:
        location = self.find_toolchain_location(version)
        if not location.exists():
            logger.warning(f"Toolchain directory {location} is already gone")
            return
        try:
            safe_rmtree(location, require_prefix=self.toolchains_dir)
        except (FilesystemError, ValueError) as e:
            raise PlatformUninstallError(
                f"Failed to remove {version}: {e}", version
            ) from e
        logger.debug(f"Removed {location}")

    def proxy_exec(
        self,
        version: ToolchainVersion,
        command: Sequence[str],
        env: Dict[str, str],
    ) -> int:
        return run_in_foreground(command, env)


class LinuxPlatform(UnixPlatform):
    """Linux: toolchains ship as tar.gz archives."""

    @property
    def archive_extension(self) -> str:
        return "tar.gz"

    def _unpack(self, version: ToolchainVersion, archive: Path, staging: Path) -> None:
        # drop the swift-<tag>-<platform>/ top-level directory
        extract_tar_archive(archive, staging, strip_components=1)


class MacOSPlatform(UnixPlatform):
    """macOS: toolchains ship as .pkg installers."""

    @property
    def archive_extension(self) -> str:
        return "pkg"

    def _run(self, command: Sequence[str], version: ToolchainVersion) -> None:
        result = subprocess.run(
            [str(part) for part in command],
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            raise PlatformInstallError(
                f"{command[0]} failed with exit code {result.returncode}: "
                f"{result.stderr.strip()}",
                version,
            )

    def _unpack(self, version: ToolchainVersion, archive: Path, staging: Path) -> None:
        expanded = staging / "expanded"
        self._run(["pkgutil", "--expand", archive, expanded], version)

        payload = expanded / "Payload"
        if not payload.exists():
            candidates = sorted(expanded.glob("*.pkg/Payload"))
            if not candidates:
                raise PlatformInstallError(
                    f"No Payload found in {archive.name}", version
                )
            payload = candidates[0]

        logger.info("Unpacking pkg payload...")
        self._run(["tar", "-C", staging, "-xf", payload], version)
        safe_rmtree(expanded, require_prefix=staging)


@functools.lru_cache(maxsize=1)
def get_current_platform() -> Platform:
    """
    Return the Platform implementation for the running OS.

    Raises:
        UnsupportedPlatformError: On anything but Linux and macOS
    """
    system = host_platform.system().lower()
    if system == "linux":
        return LinuxPlatform()
    if system == "darwin":
        return MacOSPlatform()
    raise UnsupportedPlatformError(f"Unsupported operating system: {system}")


__all__ = [
    "run_in_foreground",
    "UnixPlatform",
    "LinuxPlatform",
    "MacOSPlatform",
    "get_current_platform",
]
