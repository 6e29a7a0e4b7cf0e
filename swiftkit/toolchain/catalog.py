"""
Remote toolchain catalog backed by the swift.org install API.

Endpoints:
    <api>/install/releases.json
        [{"name": "5.10.1", "platforms": [{"name": "Ubuntu 22.04",
                                          "archs": ["x86_64", "aarch64"]}]}]
    <api>/install/dev/<branch>/<platform>.json
        {"x86_64": [{"dir": "swift-DEVELOPMENT-SNAPSHOT-2024-01-20-a"}],
         "aarch64": [...], "universal": [...]}

Usage:
    catalog = SwiftOrgCatalog()
    newest = catalog.list_releases(detect_platform(), limit=1)
"""

import logging
import re
from typing import Any, Callable, List, Optional

import requests
from requests.exceptions import RequestException

from swiftkit import __version__
from swiftkit.core.exceptions import (
    RemoteCatalogError,
    SelectorParseError,
    SnapshotBranchNotFoundError,
)
from swiftkit.core.interfaces import RemoteCatalog
from swiftkit.core.platform import PlatformDefinition
from swiftkit.toolchain.version import (
    MAIN,
    Branch,
    ReleaseBranch,
    Snapshot,
    StableRelease,
    parse_version,
)

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://www.swift.org/api/v1"

# swift.org platform names -> PlatformDefinition.name
SWIFT_ORG_PLATFORMS = {
    "Ubuntu 18.04": "ubuntu1804",
    "Ubuntu 20.04": "ubuntu2004",
    "Ubuntu 22.04": "ubuntu2204",
    "Ubuntu 24.04": "ubuntu2404",
    "Amazon Linux 2": "amazonlinux2",
    "Red Hat Universal Base Image 9": "ubi9",
    "Debian 12": "debian12",
    "Fedora 39": "fedora39",
}

_SNAPSHOT_DIR_RE = re.compile(
    r"swift(?:-([0-9]+)\.([0-9]+))?-DEVELOPMENT-SNAPSHOT-([0-9]{4}-[0-9]{2}-[0-9]{2})"
)


def stable_name(name: str) -> str:
    """Normalize a swift.org release name; "5.10" becomes "5.10.0"."""
    if len(name.split(".")) == 2:
        return name + ".0"
    return name


def parse_snapshot_dir(directory: str) -> Optional[Snapshot]:
    """
    Parse a snapshot directory name such as
    ``swift-5.10-DEVELOPMENT-SNAPSHOT-2024-01-20-a``.

    Returns:
        The Snapshot, or None if the name is not a snapshot directory
    """
    match = _SNAPSHOT_DIR_RE.search(directory)
    if not match:
        return None
    major, minor, date = match.groups()
    branch: Branch = MAIN
    if major is not None:
        branch = ReleaseBranch(int(major), int(minor))
    return Snapshot(branch, date)


class SwiftOrgCatalog(RemoteCatalog):
    """
    RemoteCatalog querying swift.org.

    Attributes:
        api_base_url: Base URL of the install API
        timeout: HTTP timeout in seconds
    """

    def __init__(
        self,
        api_base_url: str = DEFAULT_API_BASE_URL,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", f"swiftkit/{__version__}")

    def _get_json(self, url: str) -> Any:
        logger.debug(f"Fetching {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
        except RequestException as e:
            raise RemoteCatalogError(f"Could not reach {url}: {e}") from e

        if response.status_code == 404:
            return None
        if not response.ok:
            raise RemoteCatalogError(
                f"Received {response.status_code} when reaching {url}: {response.text[:200]}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise RemoteCatalogError(f"Invalid JSON from {url}: {e}") from e

    def list_releases(
        self,
        platform: PlatformDefinition,
        filter: Optional[Callable[[StableRelease], bool]] = None,
        limit: Optional[int] = None,
    ) -> List[StableRelease]:
        url = f"{self.api_base_url}/install/releases.json"
        data = self._get_json(url)
        if not isinstance(data, list):
            raise RemoteCatalogError(f"Unexpected release list from {url}")

        arch = platform.get_architecture()
        releases = []
        for entry in data:
            try:
                name = stable_name(entry["name"])
                platforms = entry.get("platforms", [])
            except (KeyError, TypeError, AttributeError) as e:
                raise RemoteCatalogError(f"Malformed release entry {entry!r}") from e

            # Every release is published for macOS
            if not platform.is_macos() and not any(
                SWIFT_ORG_PLATFORMS.get(p.get("name")) == platform.name
                and arch in (p.get("archs") or [])
                for p in platforms
            ):
                continue

            try:
                release = parse_version(name)
            except SelectorParseError as e:
                raise RemoteCatalogError(f"Error parsing release version {name}") from e
            if not isinstance(release, StableRelease):
                raise RemoteCatalogError(f"Error parsing release version {name}")

            if filter is None or filter(release):
                releases.append(release)

        releases.sort(reverse=True)
        logger.debug(f"Found {len(releases)} releases for {platform.name_pretty}")
        return releases[:limit] if limit is not None else releases

    def list_snapshots(
        self,
        platform: PlatformDefinition,
        branch: Branch,
        filter: Optional[Callable[[Snapshot], bool]] = None,
        limit: Optional[int] = None,
    ) -> List[Snapshot]:
        platform_name = "macos" if platform.is_macos() else platform.name
        url = f"{self.api_base_url}/install/dev/{branch.name}/{platform_name}.json"
        data = self._get_json(url)
        if data is None:
            raise SnapshotBranchNotFoundError(branch)
        if not isinstance(data, dict):
            raise RemoteCatalogError(f"Unexpected snapshot list from {url}")

        key = "universal" if platform.is_macos() else platform.get_architecture()
        snapshots = []
        for entry in data.get(key) or []:
            snapshot = parse_snapshot_dir(entry.get("dir", ""))
            if snapshot is None:
                continue
            if filter is None or filter(snapshot):
                snapshots.append(snapshot)

        snapshots.sort(reverse=True)
        return snapshots[:limit] if limit is not None else snapshots


__all__ = [
    "DEFAULT_API_BASE_URL",
    "SWIFT_ORG_PLATFORMS",
    "stable_name",
    "parse_snapshot_dir",
    "SwiftOrgCatalog",
]
