"""
Toolchain identity and selector model.

A ToolchainVersion names exactly one installable toolchain: either a stable
release (``5.10.1``) or a development snapshot (``main-snapshot-2024-01-20``,
``5.10-snapshot-2024-01-20``). A ToolchainSelector is a user supplied pattern
that may match several versions (``latest``, ``5``, ``5.10``,
``main-snapshot``).

Ordering:
    Stable releases order lexicographically on (major, minor, patch).
    Snapshots on the same branch order by date. To keep ``max``/``sorted``
    well defined on mixed collections every comparison goes through
    ``sort_key``, which gives a total order:

        main snapshots < release-branch snapshots (by major, minor) < stable

    and within each group the natural order above. So a stable release always
    ranks above any snapshot, and the main branch ranks below release branches.

Example:
    >>> from swiftkit.toolchain.version import parse_selector, parse_version
    >>> selector = parse_selector("5.10")
    >>> selector.matches(parse_version("5.10.1"))
    True
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

from swiftkit.core.exceptions import SelectorParseError


_DATE = r"[0-9]{4}-[0-9]{2}-[0-9]{2}"


# ============================================================================
# Versions
# ============================================================================


@dataclass(frozen=True)
class ReleaseBranch:
    """A release development branch such as ``5.10``."""

    major: int
    minor: int

    @property
    def name(self) -> str:
        return f"{self.major}.{self.minor}"

    def __str__(self) -> str:
        return self.name


class _MainBranch:
    """The main development branch (singleton ``MAIN``)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def name(self) -> str:
        return "main"

    def __repr__(self) -> str:
        return "MAIN"

    def __str__(self) -> str:
        return self.name

    def __reduce__(self):
        return (_MainBranch, ())


MAIN = _MainBranch()

Branch = Union[_MainBranch, ReleaseBranch]


def _branch_key(branch: Branch) -> Tuple[int, int, int]:
    if isinstance(branch, ReleaseBranch):
        return (1, branch.major, branch.minor)
    return (0, 0, 0)


class _Ordered:
    """Total ordering through ``sort_key`` shared by both version variants."""

    def sort_key(self) -> tuple:
        raise NotImplementedError

    def __lt__(self, other):
        if not isinstance(other, _Ordered):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __le__(self, other):
        if not isinstance(other, _Ordered):
            return NotImplemented
        return self.sort_key() <= other.sort_key()

    def __gt__(self, other):
        if not isinstance(other, _Ordered):
            return NotImplemented
        return self.sort_key() > other.sort_key()

    def __ge__(self, other):
        if not isinstance(other, _Ordered):
            return NotImplemented
        return self.sort_key() >= other.sort_key()


@dataclass(frozen=True, eq=True, order=False)
class StableRelease(_Ordered):
    """A stable release toolchain, e.g. 5.10.1."""

    major: int
    minor: int
    patch: int

    def sort_key(self) -> tuple:
        return (1, 0, 0, 0, self.major, self.minor, self.patch, "")

    @property
    def name(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def is_stable_release(self) -> bool:
        return True

    def is_snapshot(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"Swift {self.name}"


@dataclass(frozen=True, eq=True, order=False)
class Snapshot(_Ordered):
    """A development snapshot toolchain identified by branch and date."""

    branch: Branch
    date: str

    def sort_key(self) -> tuple:
        return (0,) + _branch_key(self.branch) + (0, 0, 0, self.date)

    @property
    def name(self) -> str:
        if isinstance(self.branch, ReleaseBranch):
            return f"{self.branch.name}-snapshot-{self.date}"
        return f"main-snapshot-{self.date}"

    def is_stable_release(self) -> bool:
        return False

    def is_snapshot(self) -> bool:
        return True

    def __str__(self) -> str:
        return self.name


ToolchainVersion = Union[StableRelease, Snapshot]


_STABLE_VERSION_RE = re.compile(r"([0-9]+)\.([0-9]+)\.([0-9]+)")
_MAIN_SNAPSHOT_VERSION_RE = re.compile(rf"main-snapshot-({_DATE})")
_RELEASE_SNAPSHOT_VERSION_RE = re.compile(rf"([0-9]+)\.([0-9]+)-snapshot-({_DATE})")


def parse_version(text: str) -> ToolchainVersion:
    """
    Parse the canonical name of a toolchain version.

    This is the exact inverse of ``version.name``.

    Args:
        text: Canonical version name (e.g. "5.10.1", "main-snapshot-2024-01-20")

    Returns:
        Parsed StableRelease or Snapshot

    Raises:
        SelectorParseError: If the text is not a canonical version name
    """
    match = _STABLE_VERSION_RE.fullmatch(text)
    if match:
        return StableRelease(*(int(part) for part in match.groups()))

    match = _MAIN_SNAPSHOT_VERSION_RE.fullmatch(text)
    if match:
        return Snapshot(MAIN, match.group(1))

    match = _RELEASE_SNAPSHOT_VERSION_RE.fullmatch(text)
    if match:
        branch = ReleaseBranch(int(match.group(1)), int(match.group(2)))
        return Snapshot(branch, match.group(3))

    raise SelectorParseError(text, kind="toolchain version")


def format_version(version: ToolchainVersion) -> str:
    """Return the canonical name of a version."""
    return version.name


# ============================================================================
# Selectors
# ============================================================================


class LatestSelector:
    """Selects the newest stable release."""

    def matches(self, version: ToolchainVersion) -> bool:
        return version.is_stable_release()

    def is_release_selector(self) -> bool:
        return True

    def __eq__(self, other):
        return isinstance(other, LatestSelector)

    def __hash__(self):
        return hash("latest")

    def __repr__(self) -> str:
        return "LatestSelector()"

    def __str__(self) -> str:
        return "latest"


@dataclass(frozen=True)
class StableSelector:
    """
    Selects stable releases by major and optionally minor and patch.

    Omitted fields are wildcards, narrowing left to right.
    """

    major: int
    minor: Optional[int] = None
    patch: Optional[int] = None

    def matches(self, version: ToolchainVersion) -> bool:
        if not isinstance(version, StableRelease):
            return False
        if version.major != self.major:
            return False
        if self.minor is not None and version.minor != self.minor:
            return False
        if self.patch is not None and version.patch != self.patch:
            return False
        return True

    def is_release_selector(self) -> bool:
        return True

    def __str__(self) -> str:
        parts = [str(self.major)]
        if self.minor is not None:
            parts.append(str(self.minor))
            if self.patch is not None:
                parts.append(str(self.patch))
        return ".".join(parts)


@dataclass(frozen=True)
class SnapshotSelector:
    """Selects snapshots on a branch, optionally pinned to a date."""

    branch: Branch
    date: Optional[str] = None

    def matches(self, version: ToolchainVersion) -> bool:
        if not isinstance(version, Snapshot):
            return False
        if version.branch != self.branch:
            return False
        return self.date is None or version.date == self.date

    def is_release_selector(self) -> bool:
        return False

    def __str__(self) -> str:
        prefix = f"{self.branch.name}-snapshot"
        if self.date is None:
            return prefix
        return f"{prefix}-{self.date}"


ToolchainSelector = Union[LatestSelector, StableSelector, SnapshotSelector]

LATEST = LatestSelector()


# Each grammar is a pure text -> Optional[selector] function. They are tried in
# order by parse_selector and the first one returning a selector wins.

_STABLE_SELECTOR_RE = re.compile(r"([0-9]+)(?:\.([0-9]+))?(?:\.([0-9]+))?")
_RELEASE_SNAPSHOT_SELECTOR_RE = re.compile(
    rf"([0-9]+)\.([0-9]+)-(?:snapshot|DEVELOPMENT-SNAPSHOT)(?:-({_DATE}))?(?:-a)?"
)
_MAIN_SNAPSHOT_SELECTOR_RE = re.compile(
    rf"(?:main-snapshot|swift-DEVELOPMENT-SNAPSHOT)(?:-({_DATE}))?(?:-a)?"
)


def parse_latest(text: str) -> Optional[ToolchainSelector]:
    """Grammar for the literal ``latest``."""
    if text == "latest":
        return LATEST
    return None


def parse_stable(text: str) -> Optional[ToolchainSelector]:
    """Grammar for ``a``, ``a.b`` and ``a.b.c``."""
    match = _STABLE_SELECTOR_RE.fullmatch(text)
    if not match:
        return None
    major, minor, patch = match.groups()
    return StableSelector(
        int(major),
        int(minor) if minor is not None else None,
        int(patch) if patch is not None else None,
    )


def parse_release_snapshot(text: str) -> Optional[ToolchainSelector]:
    """
    Grammar for release branch snapshots.

    Accepts ``a.b-snapshot[-YYYY-mm-dd]`` and the swift.org spelling
    ``a.b-DEVELOPMENT-SNAPSHOT[-YYYY-mm-dd][-a]``.
    """
    match = _RELEASE_SNAPSHOT_SELECTOR_RE.fullmatch(text)
    if not match:
        return None
    major, minor, date = match.groups()
    return SnapshotSelector(ReleaseBranch(int(major), int(minor)), date)


def parse_main_snapshot(text: str) -> Optional[ToolchainSelector]:
    """
    Grammar for main branch snapshots.

    Accepts ``main-snapshot[-YYYY-mm-dd]`` and the swift.org spelling
    ``swift-DEVELOPMENT-SNAPSHOT[-YYYY-mm-dd][-a]``.
    """
    match = _MAIN_SNAPSHOT_SELECTOR_RE.fullmatch(text)
    if not match:
        return None
    return SnapshotSelector(MAIN, match.group(1))


SELECTOR_GRAMMARS: List[Callable[[str], Optional[ToolchainSelector]]] = [
    parse_latest,
    parse_stable,
    parse_release_snapshot,
    parse_main_snapshot,
]


def parse_selector(text: str) -> ToolchainSelector:
    """
    Parse a toolchain selector from free text.

    Args:
        text: Selector text (e.g. "latest", "5.10", "main-snapshot")

    Returns:
        The selector produced by the first matching grammar

    Raises:
        SelectorParseError: If no grammar matches (carries the offending text)

    Example:
        >>> parse_selector("5.7-snapshot")
        SnapshotSelector(branch=ReleaseBranch(major=5, minor=7), date=None)
    """
    for grammar in SELECTOR_GRAMMARS:
        selector = grammar(text)
        if selector is not None:
            return selector
    raise SelectorParseError(text)


def selector_for(version: ToolchainVersion) -> ToolchainSelector:
    """Return the selector matching exactly one version."""
    if isinstance(version, StableRelease):
        return StableSelector(version.major, version.minor, version.patch)
    return SnapshotSelector(version.branch, version.date)


__all__ = [
    "MAIN",
    "ReleaseBranch",
    "Branch",
    "StableRelease",
    "Snapshot",
    "ToolchainVersion",
    "parse_version",
    "format_version",
    "LatestSelector",
    "StableSelector",
    "SnapshotSelector",
    "ToolchainSelector",
    "LATEST",
    "SELECTOR_GRAMMARS",
    "parse_latest",
    "parse_stable",
    "parse_release_snapshot",
    "parse_main_snapshot",
    "parse_selector",
    "selector_for",
]
