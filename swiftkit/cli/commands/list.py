"""
List command implementation.

Lists installed toolchains, newest first, marking the active one and the
global default. Read only; the state lock is not taken.
"""

import logging
from pathlib import Path

from swiftkit.cli.utils import safe_print
from swiftkit.core.state import StateStore
from swiftkit.toolchain.resolver import list_installed, resolve_active
from swiftkit.toolchain.version import parse_selector

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the list command.

    Args:
        args: Parsed command-line arguments with:
            - toolchain: Optional selector text

    Returns:
        Exit code (0 for success)
    """
    selector = parse_selector(args.toolchain) if args.toolchain else None
    config = StateStore().load()
    active = resolve_active(config, Path.cwd())

    versions = sorted(list_installed(config, selector), reverse=True)
    releases = [v for v in versions if v.is_stable_release()]
    snapshots = [v for v in versions if v.is_snapshot()]

    def describe(version) -> str:
        line = str(version)
        if version == active.version:
            line += " (in use)"
        if version == config.in_use:
            line += " (default)"
        return line

    if selector is not None:
        safe_print(f"Installed toolchains matching {selector}")
    else:
        safe_print("Installed toolchains")
    safe_print("--------------------")

    if not versions:
        safe_print("(none)")
        return 0

    if releases:
        safe_print("Release toolchains:")
        for version in releases:
            safe_print(f"  {describe(version)}")
    if snapshots:
        safe_print("Snapshot toolchains:")
        for version in snapshots:
            safe_print(f"  {describe(version)}")

    return 0
