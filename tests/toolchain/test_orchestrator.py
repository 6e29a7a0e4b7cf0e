"""
Unit tests for the install/use/update/uninstall orchestration.

Uses the in-memory fakes from tests.mocks for the platform, catalog and
downloader; config.json and the state lock are real files in a temp home.
"""

import os
from unittest.mock import patch

import pytest

from swiftkit.core.exceptions import (
    DownloadError,
    LockTimeoutError,
    PlatformInstallError,
    PlatformUninstallError,
    ProxyError,
    RemoteCatalogError,
    SnapshotBranchNotFoundError,
    ToolchainNotInstalledError,
    UpdatePhaseError,
)
from swiftkit.core.locking import acquire
from swiftkit.toolchain.links import ProxyLinks
from swiftkit.toolchain.orchestrator import (
    Orchestrator,
    UpdateBound,
    UpdateStatus,
    next_default,
    update_bound,
)
from swiftkit.toolchain.version import (
    LATEST,
    MAIN,
    ReleaseBranch,
    Snapshot,
    StableRelease,
    parse_selector,
)
from tests.mocks import FakePlatform


V5_6_0 = StableRelease(5, 6, 0)
V5_6_3 = StableRelease(5, 6, 3)
V5_7_0 = StableRelease(5, 7, 0)
V5_9_0 = StableRelease(5, 9, 0)
V5_10_0 = StableRelease(5, 10, 0)
V5_10_1 = StableRelease(5, 10, 1)
V5_11_0 = StableRelease(5, 11, 0)
V6_0_0 = StableRelease(6, 0, 0)
MAIN_JAN = Snapshot(MAIN, "2024-01-20")
MAIN_FEB = Snapshot(MAIN, "2024-02-01")
BRANCH_JAN = Snapshot(ReleaseBranch(5, 10), "2024-01-20")


def seed(store, *versions, in_use=None):
    """Record versions as installed without going through install."""

    def mutate(config):
        config.installed_toolchains.update(versions)
        config.in_use = in_use

    return store.update(mutate)


# ============================================================================
# Pure helpers
# ============================================================================


class TestUpdateBound:
    """Tests for update_bound."""

    def test_no_selector_stays_on_minor_line(self):
        assert update_bound(V5_10_0, None) is UpdateBound.LATEST_PATCH

    def test_minor_selector_stays_on_minor_line(self):
        assert update_bound(V5_10_0, parse_selector("5.10")) is UpdateBound.LATEST_PATCH

    def test_major_selector_allows_newer_minor(self):
        assert update_bound(V5_10_0, parse_selector("5")) is UpdateBound.LATEST_MINOR

    def test_latest_allows_anything(self):
        assert update_bound(V5_10_0, LATEST) is UpdateBound.LATEST

    def test_snapshot_stays_on_branch(self):
        assert update_bound(MAIN_JAN, parse_selector("main-snapshot")) is UpdateBound.SNAPSHOT


class TestNextDefault:
    """Tests for the default picked after removing the default."""

    def test_prefers_newest_stable_for_stable(self):
        """Test a removed release is replaced by the newest release."""
        assert next_default(V5_7_0, [MAIN_FEB, V5_6_0, V5_6_3]) == V5_6_3

    def test_prefers_same_branch_for_snapshot(self):
        """Test a removed snapshot is replaced from its own branch."""
        assert next_default(MAIN_FEB, [MAIN_JAN, BRANCH_JAN, V5_6_0]) == MAIN_JAN

    def test_falls_back_to_newest_overall(self):
        """Test any remaining toolchain is used when none is of the same kind."""
        assert next_default(V5_7_0, [MAIN_JAN, BRANCH_JAN]) == BRANCH_JAN

    def test_none_when_nothing_remains(self):
        assert next_default(V5_7_0, []) is None


# ============================================================================
# Install
# ============================================================================


class TestInstall:
    """Tests for Orchestrator.install."""

    def test_first_install_becomes_default(
        self, orchestrator, store, fake_catalog, fake_platform, fake_downloader
    ):
        """Test installing into an empty home sets the global default."""
        fake_catalog.releases = [V5_9_0, V5_10_0, V5_10_1]

        result = orchestrator.install(parse_selector("5.10"))

        assert result.version == V5_10_1
        assert result.made_default
        assert not result.already_installed
        config = store.load()
        assert config.installed_toolchains == {V5_10_1}
        assert config.in_use == V5_10_1
        assert fake_platform.installed == [V5_10_1]
        assert len(fake_downloader.discarded) == 1

    def test_second_install_keeps_default(self, orchestrator, store, fake_catalog):
        """Test a later install leaves the default alone."""
        fake_catalog.releases = [V5_9_0, V5_10_1]
        orchestrator.install(parse_selector("5.9"))

        result = orchestrator.install(parse_selector("5.10"))

        assert not result.made_default
        assert store.load().in_use == V5_9_0

    def test_install_with_use_changes_default(self, orchestrator, store, fake_catalog):
        """Test --use makes the new toolchain the default."""
        fake_catalog.releases = [V5_9_0, V5_10_1]
        orchestrator.install(parse_selector("5.9"))

        result = orchestrator.install(parse_selector("5.10"), use=True)

        assert result.made_default
        assert result.previous_default == V5_9_0
        assert store.load().in_use == V5_10_1

    def test_reinstall_is_a_no_op(
        self, orchestrator, store, fake_catalog, fake_downloader
    ):
        """Test installing an installed toolchain downloads nothing."""
        fake_catalog.releases = [V5_10_1]
        orchestrator.install(LATEST)
        before = store.config_file.read_text()

        result = orchestrator.install(LATEST)

        assert result.already_installed
        assert fake_downloader.downloads == [V5_10_1]
        assert store.config_file.read_text() == before

    def test_full_selector_skips_catalog(self, orchestrator, fake_catalog):
        """Test an exact version resolves without a catalog query."""
        result = orchestrator.install(parse_selector("5.10.1"))

        assert result.version == V5_10_1
        assert fake_catalog.queries == 0

    def test_dated_snapshot_skips_catalog(self, orchestrator, fake_catalog):
        result = orchestrator.install(parse_selector("main-snapshot-2024-01-20"))

        assert result.version == MAIN_JAN
        assert fake_catalog.queries == 0

    def test_latest_snapshot_of_branch(self, orchestrator, fake_catalog):
        """Test an undated snapshot selector installs the newest snapshot."""
        fake_catalog.snapshots = {MAIN: [MAIN_JAN, MAIN_FEB]}

        result = orchestrator.install(parse_selector("main-snapshot"))

        assert result.version == MAIN_FEB

    def test_nothing_published(self, orchestrator, store):
        """Test a selector with no published match fails cleanly."""
        with pytest.raises(RemoteCatalogError):
            orchestrator.install(parse_selector("7"))
        assert store.load().installed_toolchains == set()

    def test_download_failure_changes_nothing(
        self, orchestrator, store, fake_downloader, fake_platform
    ):
        fake_downloader.fail.add(V5_10_1)

        with pytest.raises(DownloadError):
            orchestrator.install(parse_selector("5.10.1"))

        assert store.load().installed_toolchains == set()
        assert fake_platform.installed == []

    def test_platform_failure_changes_nothing(self, orchestrator, store, fake_platform):
        """Test the record is untouched when the platform install fails."""
        fake_platform.fail_install.add(V5_10_1)

        with pytest.raises(PlatformInstallError):
            orchestrator.install(parse_selector("5.10.1"))

        config = store.load()
        assert config.installed_toolchains == set()
        assert config.in_use is None

    def test_install_waits_for_state_lock(self, orchestrator, lock_manager, store):
        """Test install cannot mutate state while another process holds the lock."""
        lock_manager.timeout = 0.1
        held = acquire(lock_manager.lock_path)
        try:
            with pytest.raises(LockTimeoutError):
                orchestrator.install(parse_selector("5.10.1"))
        finally:
            held.release()

        assert store.load().installed_toolchains == set()

    def test_unpacks_without_holding_state_lock(
        self, orchestrator, lock_manager, store, fake_platform
    ):
        """Test other commands can take the state lock while an archive unpacks."""
        lock_states = []

        def take_lock(version):
            with lock_manager.state_lock():
                lock_states.append(store.load().installed_toolchains.copy())

        fake_platform.on_stage = take_lock

        orchestrator.install(parse_selector("5.10.1"))

        assert lock_states == [set()]
        assert store.load().installed_toolchains == {V5_10_1}

    def test_failed_install_discards_archive(
        self, orchestrator, fake_platform, fake_downloader
    ):
        fake_platform.fail_install.add(V5_10_1)

        with pytest.raises(PlatformInstallError):
            orchestrator.install(parse_selector("5.10.1"))

        assert len(fake_downloader.discarded) == 1

    def test_lock_timeout_leaves_nothing_behind(
        self, orchestrator, lock_manager, fake_platform, fake_downloader
    ):
        """Test the unpacked toolchain is dropped when the state lock can't be had."""
        lock_manager.timeout = 0.1
        held = acquire(lock_manager.lock_path)
        try:
            with pytest.raises(LockTimeoutError):
                orchestrator.install(parse_selector("5.10.1"))
        finally:
            held.release()

        assert fake_platform.staged == [V5_10_1]
        assert fake_platform.installed == []
        assert list(fake_platform.toolchains_dir.iterdir()) == []
        assert len(fake_downloader.discarded) == 1


# ============================================================================
# Use
# ============================================================================


class TestUse:
    """Tests for Orchestrator.use."""

    def test_use_sets_global_default(self, orchestrator, store, workdir):
        """Test outside a project the global default changes."""
        seed(store, V5_9_0, V5_10_1, in_use=V5_10_1)

        result = orchestrator.use(parse_selector("5.9"), cwd=workdir)

        assert result.changed
        assert result.previous == V5_10_1
        assert result.version_file is None
        assert store.load().in_use == V5_9_0

    def test_use_current_default_is_unchanged(self, orchestrator, store, workdir):
        seed(store, V5_10_1, in_use=V5_10_1)

        result = orchestrator.use(parse_selector("5.10"), cwd=workdir)

        assert not result.changed

    def test_use_picks_newest_match(self, orchestrator, store, workdir):
        seed(store, V5_6_0, V5_6_3, V5_7_0, in_use=V5_7_0)

        result = orchestrator.use(parse_selector("5.6"), global_default=True, cwd=workdir)

        assert result.version == V5_6_3

    def test_use_not_installed(self, orchestrator, store, workdir):
        seed(store, V5_10_1, in_use=V5_10_1)

        with pytest.raises(ToolchainNotInstalledError):
            orchestrator.use(parse_selector("5.9"), cwd=workdir)

    def test_use_inside_project_writes_version_file(self, orchestrator, store, workdir):
        """Test inside a git checkout a .swift-version file is created at its root."""
        seed(store, V5_9_0, V5_10_1, in_use=V5_10_1)
        (workdir / ".git").mkdir()
        nested = workdir / "Sources"
        nested.mkdir()

        result = orchestrator.use(parse_selector("5.9"), cwd=nested)

        assert result.version_file == workdir / ".swift-version"
        assert (workdir / ".swift-version").read_text() == "5.9.0\n"
        assert store.load().in_use == V5_10_1

    def test_use_rewrites_existing_version_file(self, orchestrator, store, workdir):
        """Test the version file in effect is updated in place."""
        seed(store, V5_9_0, V5_10_1, in_use=V5_10_1)
        version_file = workdir / ".swift-version"
        version_file.write_text("5.10\n")

        result = orchestrator.use(parse_selector("5.9"), cwd=workdir)

        assert result.changed
        assert result.previous == V5_10_1
        assert version_file.read_text() == "5.9.0\n"

    def test_global_flag_ignores_version_file(self, orchestrator, store, workdir):
        seed(store, V5_9_0, V5_10_1, in_use=V5_10_1)
        version_file = workdir / ".swift-version"
        version_file.write_text("5.10\n")

        orchestrator.use(parse_selector("5.9"), global_default=True, cwd=workdir)

        assert version_file.read_text() == "5.10\n"
        assert store.load().in_use == V5_9_0


# ============================================================================
# Update
# ============================================================================


class TestUpdate:
    """Tests for Orchestrator.update."""

    def test_update_default_to_latest_patch(
        self, orchestrator, store, fake_catalog, workdir
    ):
        """Test updating the active toolchain stays on its minor line."""
        seed(store, V5_10_0, in_use=V5_10_0)
        fake_catalog.releases = [V5_10_0, V5_10_1, V5_11_0, V6_0_0]

        result = orchestrator.update(cwd=workdir)

        assert result.status is UpdateStatus.UPDATED
        assert result.new == V5_10_1
        config = store.load()
        assert config.installed_toolchains == {V5_10_1}
        assert config.in_use == V5_10_1

    def test_update_major_selector(self, orchestrator, store, fake_catalog):
        seed(store, V5_10_0, in_use=V5_10_0)
        fake_catalog.releases = [V5_10_1, V5_11_0, V6_0_0]

        result = orchestrator.update(parse_selector("5"))

        assert result.new == V5_11_0

    def test_update_latest(self, orchestrator, store, fake_catalog):
        seed(store, V5_10_0, in_use=V5_10_0)
        fake_catalog.releases = [V5_10_1, V5_11_0, V6_0_0]

        result = orchestrator.update(LATEST)

        assert result.new == V6_0_0

    def test_update_non_default_keeps_default(self, orchestrator, store, fake_catalog):
        """Test updating a non-default toolchain does not move the default."""
        seed(store, V5_9_0, V5_10_0, in_use=V5_10_0)
        fake_catalog.releases = [V5_9_0, StableRelease(5, 9, 2), V5_10_0]

        orchestrator.update(parse_selector("5.9"))

        config = store.load()
        assert config.installed_toolchains == {StableRelease(5, 9, 2), V5_10_0}
        assert config.in_use == V5_10_0

    def test_update_is_idempotent(self, orchestrator, store, fake_catalog, workdir):
        """Test a second update finds nothing newer."""
        seed(store, V5_10_0, in_use=V5_10_0)
        fake_catalog.releases = [V5_10_0, V5_10_1]

        orchestrator.update(cwd=workdir)
        before = store.config_file.read_text()
        result = orchestrator.update(cwd=workdir)

        assert result.status is UpdateStatus.UP_TO_DATE
        assert store.config_file.read_text() == before

    def test_newer_already_installed(self, orchestrator, store, fake_catalog):
        seed(store, V5_10_0, V5_10_1, in_use=V5_10_0)
        fake_catalog.releases = [V5_10_1]

        result = orchestrator.update(parse_selector("5.10.0"))

        assert result.status is UpdateStatus.ALREADY_INSTALLED
        assert store.load().installed_toolchains == {V5_10_0, V5_10_1}

    def test_update_declined(self, orchestrator, store, fake_catalog, fake_downloader):
        """Test a declined confirmation leaves everything as it was."""
        seed(store, V5_10_0, in_use=V5_10_0)
        fake_catalog.releases = [V5_10_1]
        asked = []

        result = orchestrator.update(
            parse_selector("5.10"),
            confirm=lambda old, new: asked.append((old, new)) or False,
        )

        assert result.status is UpdateStatus.CANCELLED
        assert asked == [(V5_10_0, V5_10_1)]
        assert fake_downloader.downloads == []

    def test_assume_yes_skips_confirmation(self, orchestrator, store, fake_catalog):
        seed(store, V5_10_0, in_use=V5_10_0)
        fake_catalog.releases = [V5_10_1]

        result = orchestrator.update(
            parse_selector("5.10"), assume_yes=True, confirm=lambda old, new: False
        )

        assert result.status is UpdateStatus.UPDATED

    def test_update_snapshot(self, orchestrator, store, fake_catalog):
        """Test a snapshot updates to the newest snapshot on its branch."""
        seed(store, MAIN_JAN, in_use=MAIN_JAN)
        fake_catalog.snapshots = {MAIN: [MAIN_JAN, MAIN_FEB]}

        result = orchestrator.update(parse_selector("main-snapshot"))

        assert result.new == MAIN_FEB
        assert store.load().in_use == MAIN_FEB

    def test_update_unpublished_branch(self, orchestrator, store):
        """Test an unpublished snapshot branch is reported."""
        seed(store, BRANCH_JAN, in_use=BRANCH_JAN)

        with pytest.raises(SnapshotBranchNotFoundError):
            orchestrator.update(parse_selector("5.10-snapshot"))

    def test_update_not_installed(self, orchestrator, store):
        seed(store, V5_10_0, in_use=V5_10_0)

        with pytest.raises(ToolchainNotInstalledError):
            orchestrator.update(parse_selector("5.9"))

    def test_install_phase_failure(self, orchestrator, store, fake_catalog, fake_platform):
        """Test a failed install leaves the old toolchain in place."""
        seed(store, V5_10_0, in_use=V5_10_0)
        fake_catalog.releases = [V5_10_1]
        fake_platform.fail_install.add(V5_10_1)

        with pytest.raises(UpdatePhaseError) as exc_info:
            orchestrator.update(parse_selector("5.10"))

        assert exc_info.value.phase == "install"
        assert isinstance(exc_info.value.cause, PlatformInstallError)
        config = store.load()
        assert config.installed_toolchains == {V5_10_0}
        assert config.in_use == V5_10_0

    def test_uninstall_phase_failure(
        self, orchestrator, store, fake_catalog, fake_platform
    ):
        """Test a failed removal leaves both toolchains installed."""
        seed(store, V5_10_0, in_use=V5_10_0)
        fake_catalog.releases = [V5_10_1]
        fake_platform.fail_uninstall.add(V5_10_0)

        with pytest.raises(UpdatePhaseError) as exc_info:
            orchestrator.update(parse_selector("5.10"))

        assert exc_info.value.phase == "uninstall"
        assert "swiftkit uninstall 5.10.0" in str(exc_info.value)
        config = store.load()
        assert config.installed_toolchains == {V5_10_0, V5_10_1}
        assert config.in_use == V5_10_1


# ============================================================================
# Uninstall
# ============================================================================


class TestUninstall:
    """Tests for Orchestrator.uninstall."""

    def test_uninstall_every_match(self, orchestrator, store, fake_platform):
        """Test every installed patch of a minor line is removed."""
        seed(store, V5_6_0, V5_6_3, V5_7_0, in_use=V5_7_0)

        result = orchestrator.uninstall(parse_selector("5.6"))

        assert result.removed == [V5_6_0, V5_6_3]
        assert fake_platform.uninstalled == [V5_6_0, V5_6_3]
        assert not result.default_changed
        assert store.load().installed_toolchains == {V5_7_0}

    def test_uninstall_default_picks_new_default(self, orchestrator, store):
        seed(store, V5_6_0, V5_6_3, V5_7_0, MAIN_FEB, in_use=V5_7_0)

        result = orchestrator.uninstall(parse_selector("5.7"))

        assert result.default_changed
        assert result.new_default == V5_6_3
        assert store.load().in_use == V5_6_3

    def test_uninstall_last_clears_default(self, orchestrator, store):
        seed(store, V5_7_0, in_use=V5_7_0)

        result = orchestrator.uninstall(parse_selector("5.7.0"))

        assert result.new_default is None
        config = store.load()
        assert config.installed_toolchains == set()
        assert config.in_use is None

    def test_confirmation_sees_matched_set(self, orchestrator, store, fake_platform):
        """Test the confirmation receives the exact set and can cancel."""
        seed(store, V5_6_0, V5_6_3, V5_7_0, in_use=V5_7_0)
        shown = []

        result = orchestrator.uninstall(
            parse_selector("5"), confirm=lambda matched: shown.append(matched) or False
        )

        assert shown == [[V5_6_0, V5_6_3, V5_7_0]]
        assert result.cancelled
        assert fake_platform.uninstalled == []
        assert len(store.load().installed_toolchains) == 3

    def test_force_skips_confirmation(self, orchestrator, store):
        seed(store, V5_6_0, in_use=V5_6_0)

        result = orchestrator.uninstall(
            parse_selector("5.6"), force=True, confirm=lambda matched: False
        )

        assert result.removed == [V5_6_0]

    def test_no_match(self, orchestrator, store):
        seed(store, V5_7_0, in_use=V5_7_0)

        result = orchestrator.uninstall(parse_selector("5.6"))

        assert result.matched == []
        assert result.removed == []

    def test_failure_stops_at_failing_toolchain(
        self, orchestrator, store, fake_platform
    ):
        """Test earlier removals stay committed and later ones are not attempted."""
        seed(store, V5_6_0, V5_6_3, V5_7_0, in_use=V5_7_0)
        fake_platform.fail_uninstall.add(V5_6_3)

        with pytest.raises(PlatformUninstallError):
            orchestrator.uninstall(parse_selector("5"))

        assert fake_platform.uninstalled == [V5_6_0]
        assert store.load().installed_toolchains == {V5_6_3, V5_7_0}


# ============================================================================
# Proxy links
# ============================================================================


@pytest.fixture
def proxy_links(temp_dir):
    target = temp_dir / "swiftkit-exe"
    target.write_text("#!/bin/sh\n")
    return ProxyLinks(bin_dir=temp_dir / "bin", target=target)


@pytest.fixture
def linking_orchestrator(
    store, lock_manager, isolated_home, fake_catalog, fake_downloader, proxy_links
):
    platform = FakePlatform(isolated_home / "toolchains", tools=("swift", "swiftc"))
    return Orchestrator(
        store,
        lock_manager,
        platform,
        catalog=fake_catalog,
        downloader=fake_downloader,
        proxy_links=proxy_links,
    )


class TestProxyLinks:
    """Tests for keeping proxy links in step with installs."""

    def test_first_install_links_tools(self, linking_orchestrator, proxy_links):
        linking_orchestrator.install(parse_selector("5.10.1"))

        assert proxy_links.linked() == ["swift", "swiftc"]
        assert os.readlink(proxy_links.bin_dir / "swift") == str(proxy_links.target)

    def test_later_install_adds_new_tools(self, linking_orchestrator, proxy_links):
        linking_orchestrator.install(parse_selector("5.9.0"))
        linking_orchestrator.platform.tools.append("swift-format")

        linking_orchestrator.install(parse_selector("5.10.1"))

        assert proxy_links.linked() == ["swift", "swift-format", "swiftc"]

    def test_unlinked_state_survives_install_and_use(
        self, linking_orchestrator, proxy_links, workdir
    ):
        """Test nothing is relinked after the user removed the links."""
        linking_orchestrator.install(parse_selector("5.9.0"))
        proxy_links.unlink()

        linking_orchestrator.install(parse_selector("5.10.1"))
        linking_orchestrator.use(parse_selector("5.10.1"), cwd=workdir)

        assert proxy_links.linked() == []

    def test_link_failure_does_not_fail_install(
        self, linking_orchestrator, proxy_links, store
    ):
        """Test a missing swiftkit executable only costs the links."""
        proxy_links._target = None
        with patch(
            "swiftkit.toolchain.links.find_swiftkit_executable",
            side_effect=ProxyError("not found"),
        ):
            result = linking_orchestrator.install(parse_selector("5.10.1"))

        assert result.made_default
        assert store.load().installed_toolchains == {V5_10_1}
        assert not proxy_links.bin_dir.exists()
