"""
Unlink command implementation.

Removes swiftkit's proxy links so toolchains found elsewhere on PATH are
used instead. Later installs do not recreate the links; ``swiftkit link``
does.
"""

import logging

from swiftkit.cli import utils
from swiftkit.cli.utils import safe_print
from swiftkit.toolchain.links import ProxyLinks

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the unlink command.

    Returns:
        Exit code (0 for success)
    """
    context = utils.create_context()
    links = context.proxy_links or ProxyLinks()

    removed = links.unlink()
    if not removed:
        safe_print("swiftkit is not linked.")
        return 0

    safe_print(f"Removed links: {', '.join(removed)}")
    return 0
