"""
Init command implementation.

Creates the swiftkit home directory and a fresh configuration record for the
detected platform.
"""

import logging

from swiftkit.cli.utils import safe_print
from swiftkit.core.directory import ensure_home_structure, get_home_dir
from swiftkit.core.locking import LockManager
from swiftkit.core.platform import detect_platform
from swiftkit.core.settings import load_settings
from swiftkit.core.state import StateStore

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the init command.

    Args:
        args: Parsed command-line arguments with:
            - overwrite: Replace an existing configuration

    Returns:
        Exit code (0 for success, 1 if already initialized)
    """
    store = StateStore()
    if store.exists() and not args.overwrite:
        safe_print(
            f"swiftkit is already initialized in {get_home_dir()}. "
            "Use --overwrite to start from scratch."
        )
        return 1

    settings = load_settings()
    ensure_home_structure()
    platform_def = detect_platform()
    logger.debug(f"Initializing for {platform_def.name_pretty}")

    lock_manager = LockManager(
        timeout=settings.lock_timeout,
        poll_interval=settings.poll_interval,
        reclaim_stale=settings.reclaim_stale_locks,
    )
    with lock_manager.state_lock():
        store.create(platform_def, overwrite=args.overwrite)

    safe_print(f"swiftkit initialized in {get_home_dir()} for {platform_def.name_pretty}")
    safe_print("Install a toolchain with `swiftkit install latest`.")
    return 0
