"""
Update command implementation.

Replaces an installed toolchain with a newer published one: the new version is
installed first, then the old one is removed.
"""

import logging
from pathlib import Path

from swiftkit.cli import utils
from swiftkit.cli.utils import progress_printer, prompt_for_confirmation, safe_print
from swiftkit.toolchain.orchestrator import UpdateStatus
from swiftkit.toolchain.version import parse_selector

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the update command.

    Args:
        args: Parsed command-line arguments with:
            - toolchain: Optional selector text
            - assume_yes: Skip the confirmation prompt

    Returns:
        Exit code (0 for success)
    """
    selector = parse_selector(args.toolchain) if args.toolchain else None
    context = utils.create_context()
    assume_yes = args.assume_yes or context.settings.assume_yes

    def confirm(old, new) -> bool:
        safe_print(f"The following toolchain will be updated: {old} -> {new}")
        return prompt_for_confirmation("Proceed?")

    result = context.orchestrator().update(
        selector,
        assume_yes=assume_yes,
        confirm=confirm,
        cwd=Path.cwd(),
        progress_callback=progress_printer,
    )

    if result.status is UpdateStatus.UP_TO_DATE:
        safe_print(f"{result.old} is already up to date")
    elif result.status is UpdateStatus.ALREADY_INSTALLED:
        safe_print(f"The newer version {result.new} of {result.old} is already installed.")
    elif result.status is UpdateStatus.CANCELLED:
        safe_print("Aborting")
    else:
        safe_print(f"Successfully updated {result.old} -> {result.new}")

    return 0
