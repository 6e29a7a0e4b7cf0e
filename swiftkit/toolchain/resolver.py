"""
Installed toolchain resolution.

Answers two questions against a loaded Config:

- Which installed toolchains does a selector match, and which one is best?
- Which toolchain is active for an invocation? First match wins:
    1. an explicit override selector (``swift +5.10 build``)
    2. the nearest ``.swift-version`` file, searching from the working
       directory up to the filesystem root
    3. the global default (``inUse``)

Usage:
    from swiftkit.toolchain.resolver import resolve_active

    active = resolve_active(config, cwd=Path.cwd())
    if active.error:
        ...
    print(active.version, active.describe_source())
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from swiftkit.core.directory import VERSION_FILE_NAME
from swiftkit.core.exceptions import (
    NoActiveToolchainError,
    SelectorParseError,
    ToolchainNotInstalledError,
    VersionFileError,
)
from swiftkit.core.state import Config
from swiftkit.toolchain.version import (
    LatestSelector,
    StableRelease,
    StableSelector,
    ToolchainSelector,
    ToolchainVersion,
    parse_selector,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Matching
# ============================================================================


def all_matching(
    config: Config, selector: Optional[ToolchainSelector] = None
) -> List[ToolchainVersion]:
    """
    Return every installed toolchain the selector matches, oldest first.

    ``latest`` still means the single newest stable release.
    """
    if isinstance(selector, LatestSelector):
        return list_installed(config, selector)

    installed = config.installed_toolchains
    if selector is not None:
        installed = [version for version in installed if selector.matches(version)]
    return sorted(installed)


def list_installed(
    config: Config, selector: Optional[ToolchainSelector] = None
) -> List[ToolchainVersion]:
    """
    List installed toolchains for a selector, oldest first.

    - No selector: everything installed.
    - ``latest``: at most one element, the newest installed stable release.
    - A stable selector without a patch: the newest patch of each matching
      major.minor line, so "5.6" gives the newest 5.6.x and "5" gives the
      newest patch of every 5.x line.
    - Anything else: every installed version the selector matches.

    Args:
        config: Loaded configuration
        selector: Optional selector to filter by

    Returns:
        Sorted list of versions
    """
    if selector is None:
        return sorted(config.installed_toolchains)

    if isinstance(selector, LatestSelector):
        stable = [v for v in config.installed_toolchains if v.is_stable_release()]
        return [max(stable)] if stable else []

    matches = [v for v in config.installed_toolchains if selector.matches(v)]

    if isinstance(selector, StableSelector) and selector.patch is None:
        newest: Dict[Tuple[int, int], StableRelease] = {}
        for version in matches:
            line = (version.major, version.minor)
            if line not in newest or version > newest[line]:
                newest[line] = version
        matches = list(newest.values())

    return sorted(matches)


def best(config: Config, selector: ToolchainSelector) -> Optional[ToolchainVersion]:
    """
    Return the newest installed toolchain matching ``selector``.

    Example:
        >>> best(config, parse_selector("5.7"))  # newest installed 5.7.x
    """
    matches = list_installed(config, selector)
    return max(matches) if matches else None


# ============================================================================
# Version files
# ============================================================================


def find_version_file(start: Path) -> Optional[Path]:
    """
    Search ``start`` and its parents for a ``.swift-version`` file.

    Returns:
        Path of the nearest version file, or None
    """
    directory = Path(start).absolute()
    for candidate_dir in (directory, *directory.parents):
        candidate = candidate_dir / VERSION_FILE_NAME
        if candidate.is_file():
            logger.debug(f"Found version file: {candidate}")
            return candidate
    return None


def find_project_root(start: Path) -> Optional[Path]:
    """Return the nearest directory at or above ``start`` containing ``.git``."""
    directory = Path(start).absolute()
    for candidate_dir in (directory, *directory.parents):
        if (candidate_dir / ".git").exists():
            return candidate_dir
    return None


def read_version_file(path: Path) -> ToolchainSelector:
    """
    Read the selector stored in a version file.

    Only the first line counts; surrounding whitespace is ignored.

    Raises:
        VersionFileError: If the file cannot be read or is empty
        SelectorParseError: If the content is not a valid selector
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise VersionFileError(path, f"Unable to read version file ({e})") from e

    lines = content.splitlines()
    text = lines[0].strip() if lines else ""
    if not text:
        raise VersionFileError(path, "The version file is empty")
    return parse_selector(text)


# ============================================================================
# Active toolchain
# ============================================================================


class Source(Enum):
    """Where the active toolchain was selected."""

    OVERRIDE = "override"
    VERSION_FILE = "version-file"
    GLOBAL_DEFAULT = "global-default"


@dataclass
class ActiveToolchain:
    """
    Result of active toolchain resolution.

    Attributes:
        version: Selected toolchain, None if nothing usable was found
        source: What decided the selection
        path: The version file, when source is VERSION_FILE
        selector: Selector that was resolved, if any
        error: Problem met reading the deciding source, if any
    """

    version: Optional[ToolchainVersion]
    source: Source
    path: Optional[Path] = None
    selector: Optional[ToolchainSelector] = None
    error: Optional[Exception] = None

    def describe_source(self) -> str:
        if self.source is Source.VERSION_FILE:
            return f"({self.path})"
        if self.source is Source.OVERRIDE:
            return f"(+{self.selector})"
        return "(default)"

    def require(self) -> ToolchainVersion:
        """
        Return the version or raise the recorded problem.

        Raises:
            The recorded error, or NoActiveToolchainError if nothing is selected
        """
        if self.error is not None:
            raise self.error
        if self.version is None:
            raise NoActiveToolchainError()
        return self.version


def resolve_active(
    config: Config,
    cwd: Optional[Path] = None,
    override: Optional[ToolchainSelector] = None,
) -> ActiveToolchain:
    """
    Determine the active toolchain.

    Problems with a version file (unreadable, empty, unparsable, matching
    nothing installed) are recorded on the result rather than raised; the
    file's presence still ends the search.

    Args:
        config: Loaded configuration
        cwd: Directory to start the version file search from (default: cwd)
        override: Explicit selector, e.g. from ``+5.10`` on a proxy command line

    Returns:
        ActiveToolchain

    Raises:
        ToolchainNotInstalledError: If an override matches nothing installed
    """
    if override is not None:
        version = best(config, override)
        if version is None:
            raise ToolchainNotInstalledError(override)
        return ActiveToolchain(version, Source.OVERRIDE, selector=override)

    version_file = find_version_file(cwd or Path.cwd())
    if version_file is not None:
        try:
            selector = read_version_file(version_file)
        except (VersionFileError, SelectorParseError) as e:
            logger.debug(f"Ignoring selection from {version_file}: {e}")
            return ActiveToolchain(None, Source.VERSION_FILE, version_file, error=e)

        version = best(config, selector)
        error = None
        if version is None:
            error = ToolchainNotInstalledError(
                selector,
                f"No installed toolchain matches the version {selector} in "
                f"{version_file}. You can install one with "
                f"`swiftkit install {selector}`",
            )
        return ActiveToolchain(
            version, Source.VERSION_FILE, version_file, selector=selector, error=error
        )

    return ActiveToolchain(config.in_use, Source.GLOBAL_DEFAULT)


__all__ = [
    "all_matching",
    "list_installed",
    "best",
    "find_version_file",
    "find_project_root",
    "read_version_file",
    "Source",
    "ActiveToolchain",
    "resolve_active",
]
