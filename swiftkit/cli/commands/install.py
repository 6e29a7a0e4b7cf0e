"""
Install command implementation.

Installs the newest published toolchain matching a selector.
"""

import logging

from swiftkit.cli import utils
from swiftkit.cli.utils import progress_printer, safe_print
from swiftkit.toolchain.version import parse_selector

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the install command.

    Args:
        args: Parsed command-line arguments with:
            - toolchain: Selector text
            - use: Make the toolchain the global default

    Returns:
        Exit code (0 for success)
    """
    selector = parse_selector(args.toolchain)
    context = utils.create_context()

    result = context.orchestrator().install(
        selector, use=args.use, progress_callback=progress_printer
    )

    if result.already_installed:
        safe_print(f"{result.version} is already installed.")
    else:
        safe_print(f"{result.version} installed successfully!")

    if result.made_default:
        message = f"The global default toolchain has been set to `{result.version}`"
        if result.previous_default is not None:
            message += f" (was {result.previous_default})"
        safe_print(message)

    return 0
