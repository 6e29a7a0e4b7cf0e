"""
Run command implementation.

Runs a command with the active toolchain, honouring inline ``+selector``
overrides. The exit code of the command is returned unchanged.
"""

import logging
from pathlib import Path

from swiftkit.cli import utils

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the run command.

    Args:
        args: Parsed command-line arguments with:
            - command_args: Command tokens, possibly with + overrides

    Returns:
        The proxied command's exit code
    """
    context = utils.create_context()
    return context.dispatcher().run(args.command_args, cwd=Path.cwd())
