"""
Proxy links in the swiftkit bin directory.

Each link is named after a toolchain tool (``swift``, ``swiftc``, ``lldb``...)
and points at the swiftkit executable. Started under a link's name, swiftkit
runs that tool from the active toolchain (see ``swiftkit.cli.parser.main``).

Links are only ever created for names that are free, and only links pointing
at the swiftkit executable are removed, so files the user put in the bin
directory are left alone.
"""

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import List, Optional

from swiftkit.core.directory import get_bin_dir
from swiftkit.core.exceptions import ProxyError

logger = logging.getLogger(__name__)

EXECUTABLE_NAME = "swiftkit"


def find_swiftkit_executable() -> Path:
    """
    Locate the swiftkit executable proxy links point at.

    Raises:
        ProxyError: If no swiftkit executable can be found
    """
    found = shutil.which(EXECUTABLE_NAME)
    if found:
        return Path(found).resolve()

    argv0 = Path(sys.argv[0])
    if argv0.name == EXECUTABLE_NAME and argv0.is_file():
        return argv0.resolve()

    raise ProxyError(
        f"Cannot find the {EXECUTABLE_NAME} executable on PATH to link proxies to"
    )


class ProxyLinks:
    """
    Manages the proxy links of one bin directory.

    Attributes:
        bin_dir: Directory holding the links (the swiftkit bin directory)
    """

    def __init__(self, bin_dir: Optional[Path] = None, target: Optional[Path] = None):
        """
        Args:
            bin_dir: Link directory (default: ``get_bin_dir()``)
            target: Executable the links point at (default: located on demand)
        """
        self.bin_dir = Path(bin_dir) if bin_dir else get_bin_dir()
        self._target = Path(target) if target else None

    @property
    def target(self) -> Path:
        if self._target is None:
            self._target = find_swiftkit_executable()
        return self._target

    def is_proxy(self, path: Path) -> bool:
        """Return True if ``path`` is a link to the swiftkit executable."""
        if not path.is_symlink():
            return False
        try:
            return Path(os.readlink(path)) == self.target
        except OSError:
            return False

    def linked(self) -> List[str]:
        """Names of the existing proxy links, sorted."""
        if not self.bin_dir.is_dir():
            return []
        return sorted(entry.name for entry in self.bin_dir.iterdir() if self.is_proxy(entry))

    def link(self, tools_dir: Path) -> List[str]:
        """
        Create a proxy link for every tool in ``tools_dir`` that has none.

        Args:
            tools_dir: A toolchain's ``usr/bin`` directory

        Returns:
            Names of the links created

        Raises:
            ProxyError: If ``tools_dir`` is missing or the executable can't be found
            OSError: If a link cannot be created
        """
        tools_dir = Path(tools_dir)
        if not tools_dir.is_dir():
            raise ProxyError(f"Toolchain tools directory not found: {tools_dir}")

        target = self.target
        self.bin_dir.mkdir(parents=True, exist_ok=True)

        created = []
        for tool in sorted(tools_dir.iterdir()):
            if tool.name == EXECUTABLE_NAME or not tool.is_file():
                continue

            proxy = self.bin_dir / tool.name
            if self.is_proxy(proxy):
                continue
            if proxy.exists() or proxy.is_symlink():
                logger.warning(f"Not linking {tool.name}: {proxy} already exists")
                continue

            os.symlink(target, proxy)
            logger.debug(f"Created proxy link: {proxy} -> {target}")
            created.append(tool.name)

        return created

    def unlink(self) -> List[str]:
        """
        Remove every proxy link.

        Returns:
            Names of the links removed
        """
        removed = []
        for name in self.linked():
            try:
                (self.bin_dir / name).unlink()
            except FileNotFoundError:
                continue
            logger.debug(f"Removed proxy link: {self.bin_dir / name}")
            removed.append(name)
        return removed


__all__ = ["EXECUTABLE_NAME", "find_swiftkit_executable", "ProxyLinks"]
