"""
Running commands from the active toolchain.

``swiftkit run`` accepts inline selector overrides:

    swiftkit run swift build +5.10          # use the newest installed 5.10.x
    swiftkit run echo ++1.0                 # ++x is passed on as +x
    swiftkit run ++ echo +1.0               # a bare ++ stops all processing

The command runs with the toolchain's ``usr/bin`` first on PATH and swiftkit's
proxy directory removed from PATH, so a proxied ``swift`` can never resolve
back to swiftkit. Proxy mode (swiftkit invoked through a link named after a
toolchain tool) passes every argument through unchanged.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from swiftkit.core.directory import get_bin_dir
from swiftkit.core.exceptions import CircularProxyError, ProxyError
from swiftkit.core.interfaces import Platform
from swiftkit.core.state import StateStore
from swiftkit.toolchain.resolver import resolve_active
from swiftkit.toolchain.version import ToolchainSelector, ToolchainVersion, parse_selector

logger = logging.getLogger(__name__)

PROXY_ENV_MARKER = "SWIFTKIT_PROXY_IN_PROGRESS"


def extract_proxy_arguments(
    tokens: Sequence[str],
) -> Tuple[List[str], Optional[ToolchainSelector]]:
    """
    Split a run command line into the command and an optional selector.

    Rules, while escaping is on:
        ``++``      turns escaping off for the rest of the tokens (dropped)
        ``++x``     becomes the literal token ``+x``
        ``+sel``    is parsed as a selector and dropped; the last one wins
    Everything else is kept in order.

    Returns:
        (command tokens, selector or None)

    Raises:
        SelectorParseError: If a ``+sel`` token is not a valid selector
        ProxyError: If no command tokens remain

    Example:
        >>> extract_proxy_arguments(["swift", "+5.10", "build"])
        (['swift', 'build'], StableSelector(major=5, minor=10, patch=None))
    """
    command: List[str] = []
    selector: Optional[ToolchainSelector] = None
    escaping = True

    for token in tokens:
        if escaping and token == "++":
            escaping = False
        elif escaping and token.startswith("++"):
            command.append(token[1:])
        elif escaping and token.startswith("+"):
            selector = parse_selector(token[1:])
        else:
            command.append(token)

    if not command:
        raise ProxyError("Provide at least one command to run.")

    return command, selector


def _same_path(entry: str, directory: Path) -> bool:
    try:
        return Path(entry).resolve() == directory.resolve()
    except (OSError, RuntimeError):
        return Path(entry) == directory


def proxy_environment(
    toolchain_bin_dir: Path,
    base_env: Optional[Dict[str, str]] = None,
    proxy_bin_dir: Optional[Path] = None,
) -> Dict[str, str]:
    """
    Build the environment for a proxied command.

    Args:
        toolchain_bin_dir: The toolchain's binary directory, put first on PATH
        base_env: Environment to start from (default: os.environ)
        proxy_bin_dir: swiftkit's proxy directory, removed from PATH

    Returns:
        New environment dictionary, marked as proxied
    """
    env = dict(os.environ if base_env is None else base_env)
    proxy_bin_dir = Path(proxy_bin_dir) if proxy_bin_dir else get_bin_dir()

    entries = [
        entry
        for entry in env.get("PATH", "").split(os.pathsep)
        if entry
        and not _same_path(entry, proxy_bin_dir)
        and not _same_path(entry, toolchain_bin_dir)
    ]
    env["PATH"] = os.pathsep.join([str(toolchain_bin_dir)] + entries)
    env[PROXY_ENV_MARKER] = "1"
    return env


class ProxyDispatcher:
    """
    Runs commands against the active toolchain.

    Attributes:
        store: Persisted configuration (read only)
        platform: Locates toolchains and runs the child process
        proxy_bin_dir: swiftkit's proxy directory
    """

    def __init__(
        self,
        store: StateStore,
        platform: Platform,
        proxy_bin_dir: Optional[Path] = None,
    ):
        self.store = store
        self.platform = platform
        self.proxy_bin_dir = Path(proxy_bin_dir) if proxy_bin_dir else get_bin_dir()

    def resolve(
        self, override: Optional[ToolchainSelector] = None, cwd: Optional[Path] = None
    ) -> ToolchainVersion:
        """
        Resolve the toolchain to run with.

        Raises:
            ToolchainNotInstalledError, VersionFileError, SelectorParseError,
            NoActiveToolchainError
        """
        config = self.store.load()
        return resolve_active(config, cwd, override).require()

    def executable_for(self, version: ToolchainVersion, name: str) -> str:
        """Return the toolchain's copy of ``name`` if it has one, else ``name``."""
        candidate = self.platform.find_bin_dir(version) / name
        if os.sep not in name and candidate.is_file():
            return str(candidate)
        return name

    def dispatch(
        self,
        command: Sequence[str],
        override: Optional[ToolchainSelector] = None,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> int:
        """
        Run ``command`` with the resolved toolchain.

        Returns:
            The child's exit code, unchanged
        """
        if not command:
            raise ProxyError("Provide at least one command to run.")

        version = self.resolve(override, cwd)
        child_env = proxy_environment(
            self.platform.find_bin_dir(version), env, self.proxy_bin_dir
        )
        executable = self.executable_for(version, command[0])
        logger.debug(f"Running {executable} with {version}")
        return self.platform.proxy_exec(version, [executable, *command[1:]], child_env)

    def run(
        self,
        tokens: Sequence[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> int:
        """Parse a ``swiftkit run`` command line and dispatch it."""
        command, selector = extract_proxy_arguments(tokens)
        return self.dispatch(command, selector, cwd, env)

    def proxy(
        self,
        name: str,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> int:
        """
        Proxy a tool invoked through a link named ``name``.

        Raises:
            CircularProxyError: If already running inside a proxied command
        """
        current_env = os.environ if env is None else env
        if current_env.get(PROXY_ENV_MARKER):
            raise CircularProxyError()
        return self.dispatch([name, *args], None, cwd, env)


__all__ = [
    "PROXY_ENV_MARKER",
    "extract_proxy_arguments",
    "proxy_environment",
    "ProxyDispatcher",
]
