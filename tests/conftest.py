"""
Pytest configuration and shared fixtures for swiftkit tests.
"""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from swiftkit.core.locking import LockManager
from swiftkit.core.state import StateStore
from swiftkit.toolchain.orchestrator import Orchestrator
from tests.mocks import UBUNTU_2204, FakeCatalog, FakeDownloader, FakePlatform


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def isolated_home(temp_dir: Path, monkeypatch) -> Path:
    """Point the swiftkit home directory at a temporary location."""
    home = temp_dir / "swiftkit-home"
    home.mkdir()

    monkeypatch.setenv("SWIFTKIT_HOME_DIR", str(home))
    monkeypatch.delenv("SWIFTKIT_BIN_DIR", raising=False)
    monkeypatch.delenv("SWIFTKIT_TOOLCHAINS_DIR", raising=False)
    monkeypatch.delenv("SWIFTKIT_LOCK_TIMEOUT", raising=False)
    monkeypatch.delenv("SWIFTKIT_PROXY_IN_PROGRESS", raising=False)

    return home


@pytest.fixture
def workdir(temp_dir: Path) -> Path:
    """A working directory outside any git checkout or version file."""
    path = temp_dir / "work"
    path.mkdir()
    return path


@pytest.fixture
def store(isolated_home: Path) -> StateStore:
    """An initialized state store with nothing installed."""
    state_store = StateStore(isolated_home / "config.json")
    state_store.create(UBUNTU_2204)
    return state_store


@pytest.fixture
def lock_manager(isolated_home: Path) -> LockManager:
    """Lock manager with short timeouts."""
    return LockManager(
        lock_path=isolated_home / "swiftkit.lock",
        downloads_dir=isolated_home / "downloads",
        timeout=1.0,
        poll_interval=0.05,
    )


@pytest.fixture
def fake_platform(isolated_home: Path) -> FakePlatform:
    return FakePlatform(isolated_home / "toolchains")


@pytest.fixture
def fake_catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def fake_downloader(temp_dir: Path) -> FakeDownloader:
    return FakeDownloader(temp_dir / "archives")


@pytest.fixture
def orchestrator(store, lock_manager, fake_platform, fake_catalog, fake_downloader):
    return Orchestrator(
        store,
        lock_manager,
        fake_platform,
        catalog=fake_catalog,
        downloader=fake_downloader,
    )


@pytest.fixture(autouse=True)
def reset_caches():
    """Reset module-level caches between tests."""
    from swiftkit.core import platform
    from swiftkit.toolchain import platforms

    platform.detect_platform.cache_clear()
    platforms.get_current_platform.cache_clear()

    yield
