"""
Use command implementation.

With a selector, makes the newest matching installed toolchain the active
one, either through the project's .swift-version file or the global default.
Without a selector, reports the active toolchain.
"""

import logging
from pathlib import Path

from swiftkit.cli import utils
from swiftkit.cli.utils import safe_print
from swiftkit.toolchain.resolver import resolve_active
from swiftkit.toolchain.version import parse_selector

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the use command.

    Args:
        args: Parsed command-line arguments with:
            - toolchain: Optional selector text
            - global_default: Change the global default even inside a project
            - print_location: Print the active toolchain's directory

    Returns:
        Exit code (0 for success)
    """
    context = utils.create_context()
    cwd = Path.cwd()

    if args.toolchain is None:
        return _show_active(context, cwd, args.print_location)

    selector = parse_selector(args.toolchain)
    result = context.orchestrator().use(
        selector, global_default=args.global_default, cwd=cwd
    )

    if not result.changed:
        safe_print(f"The selected toolchain {result.version} is already in use.")
        return 0

    if result.version_file is not None:
        message = f"The file `{result.version_file}` has been set to `{result.version}`"
    else:
        message = f"The global default toolchain has been set to `{result.version}`"
    if result.previous is not None:
        message += f" (was {result.previous})"
    safe_print(message)
    return 0


def _show_active(context, cwd: Path, print_location: bool) -> int:
    config = context.store.load()
    active = resolve_active(config, cwd)
    version = active.require()

    if print_location:
        safe_print(str(context.platform.find_toolchain_location(version)))
    else:
        safe_print(f"{version} {active.describe_source()}")
    return 0
