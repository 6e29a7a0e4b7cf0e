"""
Install, use, update and uninstall: the state transitions over Config.

A toolchain is NotInstalled, Installed, or Installed and in use (the global
default). Every transition mutates config.json through StateStore while the
state lock is held. Network I/O (catalog queries, downloads) and archive
extraction happen before the lock is taken; under the lock an install only
moves the unpacked toolchain into place and saves the record, so concurrent
``use``/``uninstall`` are not held up by long downloads or large archives.

The installed set only changes after the Platform reports success, so the
record never claims a toolchain whose files are missing, or the reverse.

Usage:
    orchestrator = Orchestrator(store, lock_manager, platform, catalog, downloader)
    result = orchestrator.install(parse_selector("5.10"))
    orchestrator.use(parse_selector("5.10"), global_default=True)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from swiftkit.core.directory import VERSION_FILE_NAME
from swiftkit.core.download import DownloadProgress
from swiftkit.core.exceptions import (
    ProxyError,
    RemoteCatalogError,
    SwiftkitError,
    ToolchainNotInstalledError,
    UpdatePhaseError,
)
from swiftkit.core.filesystem import atomic_write
from swiftkit.core.interfaces import Platform, RemoteCatalog
from swiftkit.core.locking import LockManager
from swiftkit.core.platform import PlatformDefinition
from swiftkit.core.state import Config, StateStore
from swiftkit.toolchain.downloader import ToolchainDownloader
from swiftkit.toolchain.links import ProxyLinks
from swiftkit.toolchain.resolver import (
    Source,
    all_matching,
    best,
    find_project_root,
    resolve_active,
)
from swiftkit.toolchain.version import (
    LatestSelector,
    Snapshot,
    SnapshotSelector,
    StableRelease,
    StableSelector,
    ToolchainSelector,
    ToolchainVersion,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Results
# ============================================================================


@dataclass
class InstallResult:
    """Outcome of an install."""

    version: ToolchainVersion
    already_installed: bool = False
    made_default: bool = False
    previous_default: Optional[ToolchainVersion] = None


@dataclass
class UseResult:
    """
    Outcome of selecting a toolchain.

    ``version_file`` is set when a .swift-version file was written instead of
    the global default.
    """

    version: ToolchainVersion
    previous: Optional[ToolchainVersion]
    changed: bool
    version_file: Optional[Path] = None


class UpdateStatus(Enum):
    UP_TO_DATE = "up-to-date"
    ALREADY_INSTALLED = "already-installed"
    CANCELLED = "cancelled"
    UPDATED = "updated"


@dataclass
class UpdateResult:
    """Outcome of an update."""

    old: ToolchainVersion
    new: Optional[ToolchainVersion]
    status: UpdateStatus


@dataclass
class UninstallResult:
    """Outcome of an uninstall."""

    matched: List[ToolchainVersion] = field(default_factory=list)
    removed: List[ToolchainVersion] = field(default_factory=list)
    cancelled: bool = False
    previous_default: Optional[ToolchainVersion] = None
    new_default: Optional[ToolchainVersion] = None

    @property
    def default_changed(self) -> bool:
        return self.previous_default != self.new_default


class UpdateBound(Enum):
    """How far an update may move from the old toolchain."""

    LATEST_PATCH = "latest-patch"  # same major.minor
    LATEST_MINOR = "latest-minor"  # same major
    LATEST = "latest"  # any newer stable release
    SNAPSHOT = "snapshot"  # same branch, newer date


def update_bound(
    old: ToolchainVersion, selector: Optional[ToolchainSelector]
) -> UpdateBound:
    """
    Decide the update bound from the old toolchain and the selector used.

    A snapshot always updates within its branch. For stable releases: no
    selector, or one naming a minor version, stays on the minor line; a
    major-only selector may move to a newer minor; ``latest`` may move anywhere.
    """
    if isinstance(old, Snapshot):
        return UpdateBound.SNAPSHOT
    if isinstance(selector, LatestSelector):
        return UpdateBound.LATEST
    if isinstance(selector, StableSelector) and selector.minor is None:
        return UpdateBound.LATEST_MINOR
    return UpdateBound.LATEST_PATCH


def next_default(
    removed: ToolchainVersion, remaining: List[ToolchainVersion]
) -> Optional[ToolchainVersion]:
    """
    Pick the global default after the current default is uninstalled.

    Prefers the newest remaining toolchain of the same kind (stable releases
    for a stable release, the same branch for a snapshot), then the newest
    remaining toolchain of any kind.
    """
    if not remaining:
        return None

    if isinstance(removed, StableRelease):
        same_kind = [v for v in remaining if v.is_stable_release()]
    else:
        same_kind = [
            v for v in remaining if isinstance(v, Snapshot) and v.branch == removed.branch
        ]
    return max(same_kind) if same_kind else max(remaining)


ConfirmUpdate = Callable[[ToolchainVersion, ToolchainVersion], bool]
ConfirmUninstall = Callable[[List[ToolchainVersion]], bool]
ProgressCallback = Callable[[DownloadProgress], None]


# ============================================================================
# Orchestrator
# ============================================================================


class Orchestrator:
    """
    Drives toolchain state transitions.

    Attributes:
        store: Persisted configuration
        lock_manager: Provides the state lock
        platform: OS specific install/uninstall implementation
        catalog: Remote catalog, needed by install and update
        downloader: Archive downloader, needed by install and update
        proxy_links: Proxy links kept in step with installed tools, if any
    """

    def __init__(
        self,
        store: StateStore,
        lock_manager: LockManager,
        platform: Platform,
        catalog: Optional[RemoteCatalog] = None,
        downloader: Optional[ToolchainDownloader] = None,
        proxy_links: Optional[ProxyLinks] = None,
    ):
        self.store = store
        self.lock_manager = lock_manager
        self.platform = platform
        self.catalog = catalog
        self.downloader = downloader
        self.proxy_links = proxy_links

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    def resolve_remote(
        self, selector: ToolchainSelector, platform_def: PlatformDefinition
    ) -> ToolchainVersion:
        """
        Resolve a selector to one concrete installable version.

        Fully specified selectors resolve without a catalog query.

        Raises:
            RemoteCatalogError: If nothing matching is published
        """
        if isinstance(selector, StableSelector) and selector.patch is not None:
            return StableRelease(selector.major, selector.minor, selector.patch)
        if isinstance(selector, SnapshotSelector) and selector.date is not None:
            return Snapshot(selector.branch, selector.date)

        if self.catalog is None:
            raise RemoteCatalogError(f"No remote catalog to resolve {selector}")

        if isinstance(selector, SnapshotSelector):
            logger.info(f"Fetching the latest {selector.branch.name} branch snapshot...")
            candidates = self.catalog.list_snapshots(platform_def, selector.branch, limit=1)
        else:
            logger.info(f"Fetching the latest release matching {selector}...")
            candidates = self.catalog.list_releases(
                platform_def, filter=selector.matches, limit=1
            )

        if not candidates:
            raise RemoteCatalogError(
                f"No toolchain matching {selector} is available for "
                f"{platform_def.name_pretty}"
            )
        return candidates[0]

    def install(
        self,
        selector: ToolchainSelector,
        use: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> InstallResult:
        """
        Install the newest published toolchain matching ``selector``.

        Installing something already installed downloads nothing and reports
        ``already_installed``. The first toolchain installed becomes the global
        default, as does any toolchain installed with ``use``.

        Raises:
            RemoteCatalogError, DownloadError, PlatformInstallError, LockError
        """
        config = self.store.load()
        version = self.resolve_remote(selector, config.platform)
        return self.install_version(version, use=use, progress_callback=progress_callback)

    def install_version(
        self,
        version: ToolchainVersion,
        use: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> InstallResult:
        """Install one concrete version. See ``install``."""
        config = self.store.load()
        if version in config.installed_toolchains:
            logger.debug(f"{version} is already installed")
            return self._mark_installed(version, use, already_installed=True)

        if self.downloader is None:
            raise RemoteCatalogError(f"No downloader available to fetch {version}")

        archive = self.downloader.download(
            version,
            config.platform,
            self.platform.archive_extension,
            progress_callback=progress_callback,
        )

        # A failed install discards the archive too; it may be the cause
        try:
            staged = self.platform.stage(version, archive)
            try:
                with self.lock_manager.state_lock():
                    config = self.store.load()
                    if version in config.installed_toolchains:
                        # another process finished the same install meanwhile
                        result = self._apply_install(
                            config, version, use, already_installed=True
                        )
                    else:
                        self.platform.commit(version, staged)
                        result = self._apply_install(
                            config, version, use, already_installed=False
                        )
                    self.store.save(config)
            finally:
                self.platform.discard_staged(staged)
        finally:
            self.downloader.discard(archive)

        self._refresh_links(version, first=result.previous_default is None)
        return result

    def _mark_installed(
        self, version: ToolchainVersion, use: bool, already_installed: bool
    ) -> InstallResult:
        with self.lock_manager.state_lock():
            config = self.store.load()
            result = self._apply_install(config, version, use, already_installed)
            if result.made_default:
                self.store.save(config)
        return result

    def _apply_install(
        self,
        config: Config,
        version: ToolchainVersion,
        use: bool,
        already_installed: bool,
    ) -> InstallResult:
        previous = config.in_use
        config.installed_toolchains.add(version)

        made_default = False
        if previous is None or (use and previous != version):
            config.in_use = version
            made_default = True
            logger.debug(f"Global default set to {version}")

        return InstallResult(
            version,
            already_installed=already_installed,
            made_default=made_default,
            previous_default=previous,
        )

    def _refresh_links(self, version: ToolchainVersion, first: bool = False) -> None:
        """
        Add proxy links for the tools of ``version`` that have none yet.

        Links are created for the first toolchain installed, and afterwards
        only while swiftkit is linked, so ``swiftkit unlink`` sticks.
        """
        if self.proxy_links is None:
            return
        try:
            if not first and not self.proxy_links.linked():
                return
            created = self.proxy_links.link(self.platform.find_bin_dir(version))
        except (ProxyError, OSError) as e:
            logger.warning(f"Could not set up toolchain proxies: {e}")
            return
        if created:
            logger.info(f"Linked {', '.join(created)} in {self.proxy_links.bin_dir}")

    # ------------------------------------------------------------------
    # Use
    # ------------------------------------------------------------------

    def use(
        self,
        selector: ToolchainSelector,
        global_default: bool = False,
        cwd: Optional[Path] = None,
    ) -> UseResult:
        """
        Select the newest installed toolchain matching ``selector``.

        Unless ``global_default`` is set, a .swift-version file in effect for
        ``cwd`` is rewritten, or one is created at the root of an enclosing git
        checkout. Otherwise the global default changes.

        Raises:
            ToolchainNotInstalledError: If nothing installed matches
        """
        result = self._select(selector, global_default, Path(cwd) if cwd else Path.cwd())
        if result.changed:
            self._refresh_links(result.version)
        return result

    def _select(
        self, selector: ToolchainSelector, global_default: bool, cwd: Path
    ) -> UseResult:
        with self.lock_manager.state_lock():
            config = self.store.load()
            version = best(config, selector)
            if version is None:
                raise ToolchainNotInstalledError(selector)

            if not global_default:
                version_file, previous = self._find_version_file_target(config, cwd)
                if version_file is not None:
                    if previous == version and version_file.exists():
                        return UseResult(version, previous, False, version_file)
                    atomic_write(version_file, version.name + "\n")
                    logger.debug(f"Wrote {version.name} to {version_file}")
                    return UseResult(version, previous, True, version_file)

            previous = config.in_use
            if previous == version:
                return UseResult(version, previous, False)

            config.in_use = version
            self.store.save(config)
            return UseResult(version, previous, True)

    def _find_version_file_target(self, config: Config, cwd: Path):
        active = resolve_active(config, cwd)
        if active.source is Source.VERSION_FILE:
            return active.path, active.version

        project_root = find_project_root(cwd)
        if project_root is not None:
            return project_root / VERSION_FILE_NAME, active.version
        return None, None

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def find_newer(
        self,
        old: ToolchainVersion,
        bound: UpdateBound,
        platform_def: PlatformDefinition,
    ) -> Optional[ToolchainVersion]:
        """
        Ask the catalog for the newest version within ``bound`` newer than ``old``.

        Raises:
            SnapshotBranchNotFoundError: If the snapshot branch is not published
            RemoteCatalogError: If the catalog cannot be queried
        """
        if self.catalog is None:
            raise RemoteCatalogError("No remote catalog to check for updates")

        if isinstance(old, Snapshot):
            candidates = self.catalog.list_snapshots(
                platform_def,
                old.branch,
                filter=lambda s: s.branch == old.branch and s.date > old.date,
                limit=1,
            )
            return candidates[0] if candidates else None

        def newer_release(release: StableRelease) -> bool:
            if release <= old:
                return False
            if bound is UpdateBound.LATEST_PATCH:
                return (release.major, release.minor) == (old.major, old.minor)
            if bound is UpdateBound.LATEST_MINOR:
                return release.major == old.major
            return True

        candidates = self.catalog.list_releases(platform_def, filter=newer_release, limit=1)
        return candidates[0] if candidates else None

    def update(
        self,
        selector: Optional[ToolchainSelector] = None,
        assume_yes: bool = False,
        confirm: Optional[ConfirmUpdate] = None,
        cwd: Optional[Path] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> UpdateResult:
        """
        Replace a toolchain with a newer one: install the new, then uninstall
        the old.

        The old toolchain is the newest installed match of ``selector``, or the
        active toolchain when no selector is given. The two phases are not
        atomic; a failure reports which phase failed.

        Raises:
            ToolchainNotInstalledError: If the selector matches nothing installed
            NoActiveToolchainError: If no selector is given and none is active
            UpdatePhaseError: If the install or the uninstall phase fails
        """
        config = self.store.load()
        if selector is not None:
            old = best(config, selector)
            if old is None:
                raise ToolchainNotInstalledError(selector)
        else:
            old = resolve_active(config, cwd).require()

        bound = update_bound(old, selector)
        new = self.find_newer(old, bound, config.platform)
        if new is None:
            logger.debug(f"No newer version than {old} within {bound.value}")
            return UpdateResult(old, None, UpdateStatus.UP_TO_DATE)

        if new in config.installed_toolchains:
            return UpdateResult(old, new, UpdateStatus.ALREADY_INSTALLED)

        if not assume_yes and confirm is not None and not confirm(old, new):
            return UpdateResult(old, new, UpdateStatus.CANCELLED)

        make_default = config.in_use == old

        try:
            self.install_version(new, use=make_default, progress_callback=progress_callback)
        except SwiftkitError as e:
            raise UpdatePhaseError("install", old, new, e) from e

        try:
            self._uninstall_one(old)
        except SwiftkitError as e:
            raise UpdatePhaseError("uninstall", old, new, e) from e

        return UpdateResult(old, new, UpdateStatus.UPDATED)

    # ------------------------------------------------------------------
    # Uninstall
    # ------------------------------------------------------------------

    def uninstall(
        self,
        selector: ToolchainSelector,
        force: bool = False,
        confirm: Optional[ConfirmUninstall] = None,
    ) -> UninstallResult:
        """
        Remove every installed toolchain matching ``selector``.

        ``confirm`` is shown the exact matched set and must approve it unless
        ``force`` is set. Toolchains are removed one by one, each under the
        state lock; a failure stops at that toolchain and leaves its record
        untouched.

        Raises:
            PlatformUninstallError: If removing a toolchain's files fails
        """
        config = self.store.load()
        matched = all_matching(config, selector)
        result = UninstallResult(matched=matched, previous_default=config.in_use)
        result.new_default = config.in_use

        if not matched:
            return result

        if not force and confirm is not None and not confirm(matched):
            result.cancelled = True
            return result

        for version in matched:
            result.new_default = self._uninstall_one(version)
            result.removed.append(version)

        return result

    def _uninstall_one(self, version: ToolchainVersion) -> Optional[ToolchainVersion]:
        with self.lock_manager.state_lock():
            config = self.store.load()
            if version not in config.installed_toolchains:
                logger.debug(f"{version} is no longer installed")
                return config.in_use

            logger.info(f"Uninstalling {version}...")
            self.platform.uninstall(version)

            config.installed_toolchains.discard(version)
            if config.in_use == version:
                config.in_use = next_default(version, sorted(config.installed_toolchains))
                logger.debug(f"Global default is now {config.in_use}")
            self.store.save(config)
            return config.in_use


__all__ = [
    "InstallResult",
    "UseResult",
    "UpdateStatus",
    "UpdateResult",
    "UninstallResult",
    "UpdateBound",
    "update_bound",
    "next_default",
    "Orchestrator",
]
