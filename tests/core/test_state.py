"""
Unit tests for the persisted configuration record.
"""

import json
import logging

import pytest
from packaging.version import Version

from swiftkit import __version__
from swiftkit.core.exceptions import StateCorruptionError
from swiftkit.core.state import Config, StateStore
from swiftkit.toolchain.version import MAIN, Snapshot, StableRelease
from tests.mocks import UBUNTU_2204


V5_10_1 = StableRelease(5, 10, 1)
MAIN_JAN = Snapshot(MAIN, "2024-01-20")


@pytest.fixture
def config_file(temp_dir):
    return temp_dir / "config.json"


class TestConfig:
    """Tests for Config serialization."""

    def test_to_dict(self):
        config = Config(
            platform=UBUNTU_2204,
            in_use=V5_10_1,
            installed_toolchains={V5_10_1, MAIN_JAN},
            version=Version("0.1.0"),
        )

        assert config.to_dict() == {
            "inUse": "5.10.1",
            "installedToolchains": ["main-snapshot-2024-01-20", "5.10.1"],
            "platform": {
                "name": "ubuntu2204",
                "nameFull": "ubuntu22.04",
                "namePretty": "Ubuntu 22.04",
                "architecture": "x86_64",
            },
            "version": "0.1.0",
        }

    def test_empty_record_omits_optional_keys(self):
        data = Config(platform=UBUNTU_2204).to_dict()

        assert "inUse" not in data
        assert "version" not in data
        assert data["installedToolchains"] == []

    def test_round_trip(self):
        config = Config(
            platform=UBUNTU_2204, in_use=MAIN_JAN, installed_toolchains={MAIN_JAN, V5_10_1}
        )
        assert Config.from_dict(config.to_dict()) == config


class TestStateStore:
    """Tests for StateStore."""

    def test_create_and_load(self, config_file):
        store = StateStore(config_file)
        store.create(UBUNTU_2204)

        config = store.load()

        assert config.platform == UBUNTU_2204
        assert config.in_use is None
        assert config.installed_toolchains == set()
        assert config.version == Version(__version__)

    def test_create_refuses_existing(self, config_file):
        store = StateStore(config_file)
        store.create(UBUNTU_2204)

        with pytest.raises(FileExistsError):
            store.create(UBUNTU_2204)

    def test_create_overwrite(self, config_file):
        store = StateStore(config_file)
        store.create(UBUNTU_2204)
        store.update(lambda config: config.installed_toolchains.add(V5_10_1))

        store.create(UBUNTU_2204, overwrite=True)

        assert store.load().installed_toolchains == set()

    def test_file_is_pretty_json(self, config_file):
        store = StateStore(config_file)
        store.create(UBUNTU_2204)

        text = config_file.read_text()

        assert text.endswith("\n")
        assert json.loads(text)["platform"]["name"] == "ubuntu2204"
        assert "\n  " in text

    def test_update_persists(self, config_file):
        store = StateStore(config_file)
        store.create(UBUNTU_2204)

        def mutate(config):
            config.installed_toolchains.add(V5_10_1)
            config.in_use = V5_10_1

        store.update(mutate)

        config = StateStore(config_file).load()
        assert config.installed_toolchains == {V5_10_1}
        assert config.in_use == V5_10_1

    def test_failed_update_writes_nothing(self, config_file):
        store = StateStore(config_file)
        store.create(UBUNTU_2204)
        before = config_file.read_text()

        def mutate(config):
            config.installed_toolchains.add(V5_10_1)
            raise RuntimeError("interrupted")

        with pytest.raises(RuntimeError):
            store.update(mutate)

        assert config_file.read_text() == before

    def test_stamps_older_record(self, config_file):
        config_file.write_text(
            json.dumps(
                {
                    "installedToolchains": [],
                    "platform": UBUNTU_2204.to_dict(),
                    "version": "0.0.1",
                }
            )
        )
        store = StateStore(config_file)

        store.save(store.load())

        assert json.loads(config_file.read_text())["version"] == __version__

    def test_warns_on_newer_record(self, config_file, caplog):
        config_file.write_text(
            json.dumps(
                {
                    "installedToolchains": [],
                    "platform": UBUNTU_2204.to_dict(),
                    "version": "99.0.0",
                }
            )
        )

        with caplog.at_level(logging.WARNING):
            config = StateStore(config_file).load()

        assert config.version == Version("99.0.0")
        assert "newer than this swiftkit" in caplog.text

    def test_missing_file(self, config_file):
        with pytest.raises(StateCorruptionError, match="swiftkit init"):
            StateStore(config_file).load()

    @pytest.mark.parametrize(
        "content",
        [
            "{not json",
            "[]",
            json.dumps({"installedToolchains": []}),
            json.dumps(
                {"installedToolchains": ["five"], "platform": UBUNTU_2204.to_dict()}
            ),
            json.dumps(
                {"installedToolchains": "5.10.1", "platform": UBUNTU_2204.to_dict()}
            ),
            json.dumps(
                {
                    "installedToolchains": [],
                    "platform": UBUNTU_2204.to_dict(),
                    "version": "not a version",
                }
            ),
        ],
    )
    def test_corrupt_record(self, config_file, content):
        """Test every malformed record becomes a StateCorruptionError."""
        config_file.write_text(content)

        with pytest.raises(StateCorruptionError) as exc_info:
            StateStore(config_file).load()

        assert exc_info.value.path == config_file

    def test_default_location_follows_home(self, isolated_home):
        assert StateStore().config_file == isolated_home / "config.json"
