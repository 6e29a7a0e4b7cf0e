"""
swiftkit CLI argument parser.

This module implements the command-line interface for swiftkit using argparse.
When the executable is reached through a proxy link (e.g. ``~/.swiftkit/bin/swift``)
``main`` runs that tool from the active toolchain instead.
"""

import argparse
import importlib
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from swiftkit import __version__
from swiftkit.core.directory import get_bin_dir
from swiftkit.core.exceptions import SwiftkitError

logger = logging.getLogger(__name__)

COMMANDS = (
    "init",
    "install",
    "list",
    "list-available",
    "use",
    "update",
    "uninstall",
    "link",
    "unlink",
    "run",
)


class CLI:
    """swiftkit command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="swiftkit",
            description="swiftkit - Swift toolchain version manager",
            epilog='Use "swiftkit COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"swiftkit {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )

        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_init_command(subparsers)
        self._add_install_command(subparsers)
        self._add_list_command(subparsers)
        self._add_list_available_command(subparsers)
        self._add_use_command(subparsers)
        self._add_update_command(subparsers)
        self._add_uninstall_command(subparsers)
        self._add_link_commands(subparsers)
        self._add_run_command(subparsers)

        return parser

    def _add_init_command(self, subparsers):
        """Add 'init' subcommand."""
        parser = subparsers.add_parser(
            "init",
            help="Create the swiftkit home directory and configuration",
            description="Create the swiftkit home directory and an empty configuration",
        )
        parser.add_argument(
            "--overwrite",
            action="store_true",
            help="Replace an existing configuration",
        )

    def _add_install_command(self, subparsers):
        """Add 'install' subcommand."""
        parser = subparsers.add_parser(
            "install",
            help="Install a toolchain",
            description=(
                "Install the newest toolchain matching a selector.\n\n"
                "Examples:\n"
                "  swiftkit install latest\n"
                "  swiftkit install 5.10\n"
                "  swiftkit install main-snapshot\n"
                "  swiftkit install 5.10-snapshot-2024-01-20"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument("toolchain", metavar="SELECTOR", help="Toolchain selector")
        parser.add_argument(
            "--use",
            action="store_true",
            help="Make the installed toolchain the global default",
        )

    def _add_list_command(self, subparsers):
        """Add 'list' subcommand."""
        parser = subparsers.add_parser(
            "list",
            help="List installed toolchains",
            description="List installed toolchains, optionally filtered by a selector",
        )
        parser.add_argument(
            "toolchain", metavar="SELECTOR", nargs="?", help="Toolchain selector"
        )

    def _add_list_available_command(self, subparsers):
        """Add 'list-available' subcommand."""
        parser = subparsers.add_parser(
            "list-available",
            help="List toolchains available for download",
            description=(
                "List toolchains published for this platform.\n\n"
                "Examples:\n"
                "  swiftkit list-available              stable releases\n"
                "  swiftkit list-available 5.10         5.10.x releases\n"
                "  swiftkit list-available main-snapshot"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "toolchain", metavar="SELECTOR", nargs="?", help="Toolchain selector"
        )

    def _add_use_command(self, subparsers):
        """Add 'use' subcommand."""
        parser = subparsers.add_parser(
            "use",
            help="Select the toolchain to use",
            description=(
                "Select the newest installed toolchain matching a selector.\n\n"
                "Inside a project the .swift-version file is updated (or created\n"
                "next to .git). Without a selector the active toolchain is printed."
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "toolchain", metavar="SELECTOR", nargs="?", help="Toolchain selector"
        )
        parser.add_argument(
            "--global-default",
            "-g",
            action="store_true",
            help="Change the global default even inside a project",
        )
        parser.add_argument(
            "--print-location",
            "-p",
            action="store_true",
            help="Print the location of the active toolchain",
        )

    def _add_update_command(self, subparsers):
        """Add 'update' subcommand."""
        parser = subparsers.add_parser(
            "update",
            help="Update a toolchain to a newer version",
            description=(
                "Replace an installed toolchain with a newer one.\n\n"
                "  (none) / 5.10   newest 5.10.x patch\n"
                "  5               newest 5.x release\n"
                "  latest          newest release\n"
                "  main-snapshot   newest snapshot of the branch"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "toolchain", metavar="SELECTOR", nargs="?", help="Toolchain selector"
        )
        parser.add_argument(
            "--assume-yes", "-y", action="store_true", help="Do not ask for confirmation"
        )

    def _add_uninstall_command(self, subparsers):
        """Add 'uninstall' subcommand."""
        parser = subparsers.add_parser(
            "uninstall",
            help="Remove installed toolchains",
            description="Remove every installed toolchain matching a selector",
        )
        parser.add_argument("toolchain", metavar="SELECTOR", help="Toolchain selector")
        parser.add_argument(
            "--assume-yes", "-y", action="store_true", help="Do not ask for confirmation"
        )

    def _add_link_commands(self, subparsers):
        """Add 'link' and 'unlink' subcommands."""
        subparsers.add_parser(
            "link",
            help="Link the swiftkit proxies into the bin directory",
            description=(
                "Create proxy links for the tools of the global default toolchain "
                "in the swiftkit bin directory"
            ),
        )
        subparsers.add_parser(
            "unlink",
            help="Remove the swiftkit proxies from the bin directory",
            description=(
                "Remove swiftkit's proxy links so other Swift toolchains on PATH "
                "take effect"
            ),
        )

    def _add_run_command(self, subparsers):
        """Add 'run' subcommand."""
        subparsers.add_parser(
            "run",
            help="Run a command with the active toolchain",
            description=(
                "Run a command with the active toolchain.\n\n"
                "  swiftkit run swift build          active toolchain\n"
                "  swiftkit run swift build +5.10    newest installed 5.10.x\n"
                "  swiftkit run echo ++foo           passes +foo\n"
                "  swiftkit run ++ echo +foo         stop processing + tokens"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
            add_help=False,
        )

    def parse_args(self, args: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Everything after ``run`` belongs to the proxied command, including
        options such as ``--help``, so it is split off before argparse sees it.
        """
        args = list(sys.argv[1:] if args is None else args)

        run_args: List[str] = []
        for index, arg in enumerate(args):
            if not arg.startswith("-"):
                if arg == "run":
                    run_args = args[index + 1 :]
                    args = args[: index + 1]
                break

        parsed = self.parser.parse_args(args)
        parsed.command_args = run_args
        return parsed

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        self._configure_logging(parsed_args)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130
        except SwiftkitError as e:
            logger.error(f"Error: {e}")
            return 1
        except Exception as e:
            logger.error(f"Error: {e}")
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return 1

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,
        )

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        if args.command not in COMMANDS:
            logger.error(f"Unknown command: {args.command}")
            return 1

        module_name = args.command.replace("-", "_")
        module = importlib.import_module(f"swiftkit.cli.commands.{module_name}")
        return module.run(args)


# ============================================================================
# Proxy Mode
# ============================================================================


def proxy_name(argv0: str) -> Optional[str]:
    """
    Return the tool name when invoked through a proxy link, else None.

    Proxy links live in the swiftkit bin directory and are named after the
    toolchain tool they stand for.
    """
    path = Path(argv0)
    if path.name in ("swiftkit", "__main__.py") or not path.parent.parts:
        return None
    try:
        in_bin_dir = path.parent.resolve() == get_bin_dir().resolve()
    except OSError:
        return None
    return path.name if in_bin_dir else None


def proxy_main(name: str, args: List[str]) -> int:
    """Run ``name`` from the active toolchain; returns its exit code."""
    from swiftkit.cli.utils import create_context, print_error

    logging.basicConfig(level=logging.WARNING, format="%(message)s", force=True)
    try:
        return create_context().dispatcher().proxy(name, args, cwd=Path(os.getcwd()))
    except KeyboardInterrupt:
        return 130
    except SwiftkitError as e:
        print_error(str(e))
        return 1


def main():
    """Main entry point for CLI."""
    name = proxy_name(sys.argv[0])
    if name is not None:
        sys.exit(proxy_main(name, sys.argv[1:]))

    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
