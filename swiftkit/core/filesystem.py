"""
File system utilities for swiftkit.

This module provides the safe file operations the rest of swiftkit relies on:
- Atomic writes (temp file + rename) for config.json and version files
- Guarded recursive deletion constrained to a parent directory
- Tar archive extraction with path traversal protection
"""

import os
import shutil
import sys
import tarfile
import tempfile
from pathlib import Path
from typing import Optional, Union

from swiftkit.core.exceptions import SwiftkitError


class FilesystemError(SwiftkitError):
    """Base exception for filesystem operations."""

    pass


class ArchiveExtractionError(FilesystemError):
    """Failed to extract an archive."""

    pass


class InsecureArchiveError(ArchiveExtractionError):
    """Archive contains paths that would escape the destination."""

    pass


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check whether ``path`` is located under ``parent``.

    Args:
        path: Path to check
        parent: Potential parent directory

    Returns:
        True if path is parent or a descendant of it
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Replace a file's content so readers see either the old or the new bytes.

    The content goes to a hidden sibling file which is synced and then renamed
    over ``file_path``. On failure the sibling is removed and the existing
    file is untouched.

    Args:
        file_path: Destination file (parent directories are created)
        content: Text or bytes to store
        encoding: Encoding applied to text content

    Example:
        >>> atomic_write('config.json', '{"installedToolchains": []}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    data = content.encode(encoding) if isinstance(content, str) else content

    # same directory, so the rename never crosses filesystems
    fd, scratch_name = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    scratch = Path(scratch_name)

    try:
        with open(fd, "wb") as stream:
            stream.write(data)
            stream.flush()
            os.fsync(stream.fileno())
        scratch.replace(file_path)
    except BaseException:
        scratch.unlink(missing_ok=True)
        raise


def safe_rmtree(
    path: Union[str, Path], require_prefix: Optional[Union[str, Path]] = None
) -> None:
    """
    Safely remove a directory tree.

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be under this directory

    Raises:
        ValueError: If path is not under require_prefix
        FilesystemError: If deletion fails

    Example:
        >>> safe_rmtree(toolchains_dir / '5.10.1', require_prefix=toolchains_dir)
    """
    path = Path(path).resolve()

    if require_prefix is not None:
        require_prefix = Path(require_prefix).resolve()
        if path == require_prefix or not is_relative_to(path, require_prefix):
            raise ValueError(
                f"Refusing to delete '{path}': not under required prefix '{require_prefix}'"
            )

    if not path.exists():
        return

    if not path.is_dir():
        raise FilesystemError(f"Path is not a directory: {path}")

    try:
        shutil.rmtree(path)
    except OSError as e:
        raise FilesystemError(f"Failed to remove directory '{path}': {e}") from e


def _validate_archive_path(path: str, destination: Path) -> None:
    """
    Validate that an archive member path is safe to extract.

    Raises:
        InsecureArchiveError: If path attempts directory traversal
    """
    member_path = (destination / path).resolve()

    if not is_relative_to(member_path, destination.resolve()):
        raise InsecureArchiveError(
            f"Archive member '{path}' attempts directory traversal. "
            "This is a security risk and extraction has been blocked."
        )


def _strip_member(name: str, strip_components: int) -> Optional[str]:
    parts = [part for part in name.split("/") if part not in ("", ".")]
    if len(parts) <= strip_components:
        return None
    return "/".join(parts[strip_components:])


def extract_tar_archive(
    archive_path: Union[str, Path],
    destination: Union[str, Path],
    strip_components: int = 0,
) -> None:
    """
    Extract a compressed tar archive into a destination directory.

    Leading path components can be dropped from every member, like
    ``tar --strip-components``; members that become empty are skipped.

    Args:
        archive_path: Path to the .tar.gz (or other tarfile-supported) archive
        destination: Directory to extract into (created if missing)
        strip_components: Number of leading path components to drop

    Raises:
        ArchiveExtractionError: If the archive is missing or unreadable
        InsecureArchiveError: If a member would be written outside destination
    """
    archive_path = Path(archive_path)
    destination = Path(destination)

    if not archive_path.exists():
        raise ArchiveExtractionError(f"Archive not found: {archive_path}")

    destination.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(archive_path, "r:*") as tar:
            members = []
            for member in tar.getmembers():
                stripped = _strip_member(member.name, strip_components)
                if stripped is None:
                    continue
                _validate_archive_path(stripped, destination)
                if member.issym() or member.islnk():
                    if member.linkname.startswith("/"):
                        raise InsecureArchiveError(
                            f"Archive member '{member.name}' links to an absolute path"
                        )
                    if member.islnk():
                        target = _strip_member(member.linkname, strip_components)
                        if target is None:
                            continue
                        member.linkname = target
                member.name = stripped
                members.append(member)

            if sys.version_info >= (3, 12):
                tar.extractall(destination, members=members, filter="tar")
            else:
                tar.extractall(destination, members=members)
    except (InsecureArchiveError, ArchiveExtractionError):
        raise
    except (tarfile.TarError, OSError) as e:
        raise ArchiveExtractionError(f"Failed to extract {archive_path}: {e}") from e


__all__ = [
    "FilesystemError",
    "ArchiveExtractionError",
    "InsecureArchiveError",
    "is_relative_to",
    "atomic_write",
    "safe_rmtree",
    "extract_tar_archive",
]
