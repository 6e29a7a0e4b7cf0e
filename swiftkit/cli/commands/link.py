"""
Link command implementation.

Creates proxy links in the swiftkit bin directory for the tools of the
global default toolchain.
"""

import logging

from swiftkit.cli import utils
from swiftkit.cli.utils import safe_print
from swiftkit.core.exceptions import NoActiveToolchainError
from swiftkit.toolchain.links import ProxyLinks

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the link command.

    Returns:
        Exit code (0 for success)
    """
    context = utils.create_context()
    version = context.store.load().in_use
    if version is None:
        raise NoActiveToolchainError()

    links = context.proxy_links or ProxyLinks()
    created = links.link(context.platform.find_bin_dir(version))

    if not created:
        safe_print(f"swiftkit is already linked to {version}.")
        return 0

    safe_print(f"Linked swiftkit to {version}: {', '.join(created)}")
    safe_print(
        "Your shell may remember the previous location of these commands; "
        "run `hash -r` to refresh it."
    )
    return 0
