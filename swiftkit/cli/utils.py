"""
Shared utilities for CLI commands.

Provides the objects every command works with (settings, state store, locks,
platform, catalog, downloader, proxy links) and consistent console output helpers.
"""

import logging
import sys
from dataclasses import dataclass
from typing import List, Optional

from swiftkit.core.download import DownloadProgress
from swiftkit.core.interfaces import Platform
from swiftkit.core.locking import LockManager
from swiftkit.core.settings import Settings, load_settings
from swiftkit.core.state import StateStore
from swiftkit.toolchain.catalog import SwiftOrgCatalog
from swiftkit.toolchain.downloader import ToolchainDownloader
from swiftkit.toolchain.links import ProxyLinks
from swiftkit.toolchain.orchestrator import Orchestrator
from swiftkit.toolchain.platforms import get_current_platform
from swiftkit.toolchain.proxy import ProxyDispatcher
from swiftkit.toolchain.version import ToolchainVersion

logger = logging.getLogger(__name__)


# ============================================================================
# Command Context
# ============================================================================


@dataclass
class CommandContext:
    """Everything a command needs, built once per invocation."""

    settings: Settings
    store: StateStore
    lock_manager: LockManager
    platform: Platform
    catalog: Optional[SwiftOrgCatalog] = None
    downloader: Optional[ToolchainDownloader] = None
    proxy_links: Optional[ProxyLinks] = None

    def orchestrator(self) -> Orchestrator:
        return Orchestrator(
            self.store,
            self.lock_manager,
            self.platform,
            catalog=self.catalog,
            downloader=self.downloader,
            proxy_links=self.proxy_links,
        )

    def dispatcher(self) -> ProxyDispatcher:
        return ProxyDispatcher(self.store, self.platform)


def create_context(settings: Optional[Settings] = None) -> CommandContext:
    """
    Build the command context from settings.yaml and the environment.

    Raises:
        SettingsError: If settings.yaml is invalid
        UnsupportedPlatformError: If the OS is not supported
    """
    settings = settings or load_settings()
    lock_manager = LockManager(
        timeout=settings.lock_timeout,
        poll_interval=settings.poll_interval,
        reclaim_stale=settings.reclaim_stale_locks,
    )
    return CommandContext(
        settings=settings,
        store=StateStore(),
        lock_manager=lock_manager,
        platform=get_current_platform(),
        catalog=SwiftOrgCatalog(settings.api_base_url, timeout=settings.request_timeout),
        downloader=ToolchainDownloader(
            lock_manager,
            base_url=settings.download_base_url,
            timeout=settings.request_timeout,
            max_retries=settings.download_retries,
        ),
        proxy_links=ProxyLinks(),
    )


# ============================================================================
# User Interaction
# ============================================================================


def prompt_for_confirmation(message: str, default: bool = True) -> bool:
    """
    Ask a yes/no question on the terminal.

    Args:
        message: Question to show
        default: Answer used for an empty reply or end of input

    Returns:
        True if the user agreed
    """
    suffix = "[Y/n]" if default else "[y/N]"
    while True:
        try:
            response = input(f"{message} {suffix} ").strip().lower()
        except EOFError:
            return default
        if not response:
            return default
        if response in ("y", "yes"):
            return True
        if response in ("n", "no"):
            return False
        print("Please answer 'y' or 'n'.")


def format_toolchain_list(versions: List[ToolchainVersion]) -> str:
    return "\n".join(f"  {version}" for version in versions)


def progress_printer(progress: DownloadProgress):
    """Progress callback drawing a single updating line on stderr."""
    if sys.stderr.isatty():
        print(f"\rDownloading: {progress}", end="", file=sys.stderr, flush=True)
        if progress.total_bytes and progress.bytes_downloaded >= progress.total_bytes:
            print(file=sys.stderr)


# ============================================================================
# Output Formatting
# ============================================================================


def print_error(message: str, details: Optional[str] = None):
    """
    Print error message to stderr in consistent format.

    Args:
        message: Main error message
        details: Optional additional details
    """
    print(f"Error: {message}", file=sys.stderr)
    if details:
        print(f"  {details}", file=sys.stderr)


def safe_print(message: str, file=None):
    """
    Print message, replacing characters the console cannot encode.

    Args:
        message: Message to print
        file: Output file (default: stdout)
    """
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        stream = file or sys.stdout
        encoding = getattr(stream, "encoding", None) or "ascii"
        print(message.encode(encoding, "replace").decode(encoding), file=file)


__all__ = [
    "CommandContext",
    "create_context",
    "prompt_for_confirmation",
    "format_toolchain_list",
    "progress_printer",
    "print_error",
    "safe_print",
]
