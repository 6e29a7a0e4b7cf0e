"""
Uninstall command implementation.

Removes every installed toolchain matching a selector after showing the exact
set and asking for confirmation.
"""

import logging

from swiftkit.cli import utils
from swiftkit.cli.utils import format_toolchain_list, prompt_for_confirmation, safe_print
from swiftkit.toolchain.version import parse_selector

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the uninstall command.

    Args:
        args: Parsed command-line arguments with:
            - toolchain: Selector text
            - assume_yes: Skip the confirmation prompt

    Returns:
        Exit code (0 for success)
    """
    selector = parse_selector(args.toolchain)
    context = utils.create_context()
    force = args.assume_yes or context.settings.assume_yes

    def confirm(versions) -> bool:
        safe_print("The following toolchains will be uninstalled:")
        safe_print(format_toolchain_list(versions))
        return prompt_for_confirmation("Proceed?")

    result = context.orchestrator().uninstall(selector, force=force, confirm=confirm)

    if not result.matched:
        safe_print(f"No toolchains matched \"{args.toolchain}\"")
        return 0
    if result.cancelled:
        safe_print("Aborting uninstall")
        return 0

    for version in result.removed:
        safe_print(f"{version} uninstalled")
    if result.default_changed:
        if result.new_default is None:
            safe_print("No toolchain is the global default anymore.")
        else:
            safe_print(f"The global default toolchain has been set to `{result.new_default}`")
    safe_print(f"{len(result.removed)} toolchain(s) successfully uninstalled")
    return 0
