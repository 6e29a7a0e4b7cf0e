"""
List-available command implementation.

Lists toolchains published on swift.org for this platform, newest first,
marking the ones already installed. Only queries the catalog; the state lock
is not taken.
"""

import logging
from pathlib import Path

from swiftkit.cli import utils
from swiftkit.cli.utils import safe_print
from swiftkit.toolchain.resolver import resolve_active
from swiftkit.toolchain.version import SnapshotSelector, parse_selector

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the list-available command.

    Args:
        args: Parsed command-line arguments with:
            - toolchain: Optional selector text; without one, stable
              releases are listed

    Returns:
        Exit code (0 for success)
    """
    selector = parse_selector(args.toolchain) if args.toolchain else None
    context = utils.create_context()
    config = context.store.load()
    active = resolve_active(config, Path.cwd())

    if isinstance(selector, SnapshotSelector):
        available = context.catalog.list_snapshots(
            config.platform, selector.branch, filter=selector.matches
        )
        heading = f"Available {selector.branch.name} snapshot toolchains"
    else:
        available = context.catalog.list_releases(
            config.platform, filter=selector.matches if selector else None
        )
        heading = "Available release toolchains"
    if selector is not None:
        heading += f" matching {selector}"

    safe_print(heading)
    safe_print("-" * len(heading))

    if not available:
        safe_print("(none)")
        return 0

    for version in sorted(available, reverse=True):
        line = f"  {version}"
        if version == active.version:
            line += " (in use)"
        if version == config.in_use:
            line += " (default)"
        if version in config.installed_toolchains:
            line += " (installed)"
        safe_print(line)

    return 0
