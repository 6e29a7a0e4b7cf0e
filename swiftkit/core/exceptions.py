"""
Centralized exception hierarchy for swiftkit.

This module defines all custom exceptions used across the codebase so that
callers (mostly the CLI) can tell apart the failures that need different
recovery actions: a malformed selector, a toolchain that is not installed,
lock contention, a failing download or installer, or an unreadable state file.
"""

from pathlib import Path
from typing import Optional


# ============================================================================
# Base Exceptions
# ============================================================================


class SwiftkitError(Exception):
    """Base exception for all swiftkit errors."""

    pass


# ============================================================================
# Version Model / Resolution Exceptions
# ============================================================================


class SelectorParseError(SwiftkitError):
    """Raised when a toolchain selector or version cannot be parsed."""

    def __init__(self, text: str, kind: str = "toolchain selector"):
        self.text = text
        self.kind = kind
        super().__init__(f'invalid {kind}: "{text}"')


class ToolchainNotInstalledError(SwiftkitError):
    """Raised when a selector matched nothing in the installed set."""

    def __init__(self, selector, message: Optional[str] = None):
        self.selector = selector
        if message is None:
            message = (
                f"The selected toolchain {selector} didn't match any of the "
                f"installed toolchains. You can install it with "
                f"`swiftkit install {selector}`"
            )
        super().__init__(message)


class NoActiveToolchainError(SwiftkitError):
    """Raised when no toolchain is selected by a marker file or the default."""

    def __init__(self):
        super().__init__(
            "No installed toolchain is selected from either a .swift-version "
            "file or the global default. You can use one that is already "
            "installed with `swiftkit use <toolchain>` or install a new one "
            "with `swiftkit install --use <toolchain>`."
        )


class VersionFileError(SwiftkitError):
    """Raised when a .swift-version file cannot select a toolchain."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path}")


# ============================================================================
# Locking Exceptions
# ============================================================================


class LockError(SwiftkitError):
    """Base exception for lock contention errors."""

    pass


class LockHeldError(LockError):
    """Raised when the lock file already exists and is owned by another process."""

    def __init__(self, path: Path, pid: Optional[int]):
        self.path = Path(path)
        self.pid = pid
        owner = f"process {pid}" if pid is not None else "an unknown process"
        super().__init__(f"Lock {self.path} is held by {owner}")


class LockTimeoutError(LockError):
    """Raised when the lock cannot be acquired within the timeout."""

    def __init__(self, path: Path, pid: Optional[int], timeout: float):
        self.path = Path(path)
        self.pid = pid
        self.timeout = timeout
        owner = f"process {pid}" if pid is not None else "an unknown process"
        super().__init__(
            f"Could not acquire lock {self.path} after {timeout:g}s, it is held by "
            f"{owner}. If that process is no longer running, remove the lock file."
        )


# ============================================================================
# State / Settings Exceptions
# ============================================================================


class StateCorruptionError(SwiftkitError):
    """Raised when the persisted config.json is missing or undecodable."""

    def __init__(self, path: Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(
            f"Could not load swiftkit's configuration file at {self.path} due to "
            f'error: "{reason}". Run `swiftkit init` to create it, or fix the file '
            f"by hand."
        )


class SettingsError(SwiftkitError):
    """Raised when settings.yaml contains invalid values."""

    pass


class UnsupportedPlatformError(SwiftkitError):
    """Raised when the current OS/distribution has no toolchain builds."""

    pass


# ============================================================================
# External Collaborator Exceptions
# ============================================================================


class ExternalCollaboratorError(SwiftkitError):
    """Base exception for network and platform installer failures."""

    phase = "external"

    def __init__(self, message: str, version=None):
        self.version = version
        super().__init__(message)


class RemoteCatalogError(ExternalCollaboratorError):
    """Raised when the remote release catalog cannot be queried."""

    phase = "catalog"


class SnapshotBranchNotFoundError(RemoteCatalogError):
    """Raised when the catalog does not list snapshots for a branch."""

    def __init__(self, branch):
        self.branch = branch
        super().__init__(
            f"Snapshot branch {branch} cannot be updated. Snapshots are only "
            f"published for the newest release branch and the main branch. You "
            f"can install a fresh snapshot with `swiftkit install x.y-snapshot` "
            f"or `swiftkit install main-snapshot`."
        )


class DownloadError(ExternalCollaboratorError):
    """Raised when a toolchain archive download fails."""

    phase = "download"


class PlatformInstallError(ExternalCollaboratorError):
    """Raised when the platform installer fails to install a toolchain."""

    phase = "install"


class PlatformUninstallError(ExternalCollaboratorError):
    """Raised when the platform fails to remove a toolchain."""

    phase = "uninstall"


# ============================================================================
# Orchestration Exceptions
# ============================================================================


class UpdatePhaseError(SwiftkitError):
    """
    Raised when one phase of the two-phase update fails.

    The update is not atomic: a failure in the "install" phase leaves only the
    old toolchain, a failure in the "uninstall" phase leaves both installed.
    """

    def __init__(self, phase: str, old, new, cause: Exception):
        self.phase = phase
        self.old = old
        self.new = new
        self.cause = cause
        if phase == "install":
            hint = f"{old} is still installed; retry the update"
        else:
            hint = (
                f"{new} was installed but {old} could not be removed; "
                f"run `swiftkit uninstall {old.name}`"
            )
        super().__init__(f"Update failed during {phase} phase: {cause} ({hint})")


class ProxyError(SwiftkitError):
    """Raised when a command cannot be proxied to a toolchain."""

    pass


class CircularProxyError(ProxyError):
    """Raised when a proxy invocation would call back into itself."""

    def __init__(self):
        super().__init__("Circular swiftkit proxy invocation")
