"""
In-memory fakes for swiftkit's external collaborators.

These stand in for the OS platform, the remote catalog and the archive
downloader so orchestration can be tested without network or real installs.
"""

from .catalog import FakeCatalog, FakeDownloader
from .platform import UBUNTU_2204, FakePlatform

__all__ = [
    "FakeCatalog",
    "FakeDownloader",
    "FakePlatform",
    "UBUNTU_2204",
]
