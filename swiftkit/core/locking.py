"""
Concurrent access control for swiftkit.

Two kinds of locks are used:

- The state lock: a PID-tagged lock file created with exclusive-create
  semantics. The *existence* of the file is the lock; its contents is the
  owner's PID so a blocked user can see who holds it. Every read-modify-write
  of config.json happens while this lock is held.
- Download locks: per-toolchain ``filelock`` locks in the downloads directory
  so concurrent installs of the same version never fetch the same archive
  twice. Downloads run outside the state lock to keep its hold time short.

Usage:
    from swiftkit.core.locking import LockManager

    lock_manager = LockManager()
    with lock_manager.state_lock():
        store.update(mutate)

    with lock_manager.download_lock("5.10.1"):
        download_archive(...)
"""

import logging
import os
import random
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional, TypeVar, Union

from filelock import FileLock, Timeout

from swiftkit.core.directory import get_downloads_dir, get_lock_file
from swiftkit.core.exceptions import LockHeldError, LockTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 300.0
DEFAULT_POLL_INTERVAL = 1.0
MAX_JITTER = 0.2


class ProcessChecker:
    """
    Capability for checking whether a process is still running.

    Injected into lock acquisition so stale-lock reclaiming can be tested
    without signalling real OS processes.
    """

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        try:
            os.kill(pid, 0)  # Signal 0 = check existence only
            return True
        except ProcessLookupError:
            return False
        except PermissionError:
            # Process exists but belongs to another user
            return True
        except OSError:
            return True


class PidFileLock:
    """
    A held state lock.

    Release deletes the lock file. Releasing twice, or after the file was
    removed externally, is harmless.
    """

    def __init__(self, path: Path, pid: int):
        self.path = Path(path)
        self.pid = pid
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        try:
            self.path.unlink()
            logger.debug(f"Released lock: {self.path}")
        except FileNotFoundError:
            logger.debug(f"Lock file already removed: {self.path}")

    def __enter__(self) -> "PidFileLock":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"PidFileLock(path={str(self.path)!r}, pid={self.pid})"


def read_lock_owner(path: Union[str, Path]) -> Optional[int]:
    """
    Read the PID recorded in a lock file.

    Returns:
        The owner PID, or None if the file is gone or does not hold a PID
    """
    try:
        content = Path(path).read_text(encoding="utf-8").strip()
    except (FileNotFoundError, OSError):
        return None
    try:
        return int(content)
    except ValueError:
        return None


def _remove_stale_lock(path: Path, owner: int) -> None:
    """
    Delete a lock file left by the dead process ``owner``.

    Reclaimers serialize on a ``filelock`` guard next to the lock file and
    re-read the owner under it, so a lock another reclaimer has already
    retaken is never deleted. The guard is an OS lock and disappears with a
    crashed holder.

    Raises:
        LockHeldError: If another reclaimer holds the guard, or the lock file
            no longer belongs to ``owner``
    """
    guard = FileLock(path.with_name(f"{path.name}.reclaim"), timeout=0)
    try:
        with guard:
            current = read_lock_owner(path)
            if current != owner:
                logger.debug(f"Lock {path} changed hands during reclaim (now {current})")
                raise LockHeldError(path, current)

            logger.warning(
                f"Removing stale lock {path} left by process {owner} "
                "which is no longer running"
            )
            try:
                path.unlink()
            except FileNotFoundError:
                pass
    except Timeout as e:
        raise LockHeldError(path, owner) from e


def acquire(
    path: Union[str, Path],
    checker: Optional[ProcessChecker] = None,
    reclaim_stale: bool = False,
) -> PidFileLock:
    """
    Try once to acquire the lock file at ``path``.

    Args:
        path: Lock file path
        checker: Process liveness capability used for stale-lock reclaiming
        reclaim_stale: Remove and retake a lock whose owner is confirmed dead

    Returns:
        The held lock

    Raises:
        LockHeldError: If the file exists (carries the owner PID)
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    pid = os.getpid()

    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        owner = read_lock_owner(path)
        if reclaim_stale and owner is not None and owner != pid:
            checker = checker or ProcessChecker()
            if not checker.is_alive(owner):
                _remove_stale_lock(path, owner)
                return acquire(path, checker=checker, reclaim_stale=False)
        raise LockHeldError(path, owner)

    try:
        os.write(fd, str(pid).encode("utf-8"))
        os.fsync(fd)
    finally:
        os.close(fd)

    logger.debug(f"Acquired lock: {path} (pid {pid})")
    return PidFileLock(path, pid)


def wait_for_lock(
    path: Union[str, Path],
    timeout: float = DEFAULT_TIMEOUT,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    checker: Optional[ProcessChecker] = None,
    reclaim_stale: bool = False,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PidFileLock:
    """
    Acquire the lock, polling until ``timeout`` elapses.

    Each retry sleeps ``poll_interval`` plus up to 200ms of random jitter so
    processes started together do not retry in lockstep.

    Raises:
        LockTimeoutError: If the lock is still held at the deadline; carries
            the PID of the current owner
    """
    deadline = clock() + timeout
    announced = False

    while True:
        try:
            return acquire(path, checker=checker, reclaim_stale=reclaim_stale)
        except LockHeldError as e:
            remaining = deadline - clock()
            if remaining <= 0:
                logger.error(
                    f"Could not acquire lock {e.path} after {timeout:g}s "
                    f"(held by pid {e.pid})"
                )
                raise LockTimeoutError(e.path, e.pid, timeout) from e

            if not announced:
                logger.info(f"Waiting for lock held by process {e.pid}...")
                announced = True

            delay = poll_interval + random.uniform(0, MAX_JITTER)
            sleep(min(delay, remaining))


@contextmanager
def with_lock(
    path: Union[str, Path],
    timeout: float = DEFAULT_TIMEOUT,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    checker: Optional[ProcessChecker] = None,
    reclaim_stale: bool = False,
):
    """
    Hold the lock for the duration of a ``with`` block.

    The lock is released on every exit path; exceptions from the block
    propagate after the release.

    Example:
        >>> with with_lock(home / "swiftkit.lock", timeout=30):
        ...     store.update(mutate)
    """
    lock = wait_for_lock(
        path,
        timeout=timeout,
        poll_interval=poll_interval,
        checker=checker,
        reclaim_stale=reclaim_stale,
    )
    try:
        yield lock
    finally:
        lock.release()


def run_with_lock(
    path: Union[str, Path],
    action: Callable[[], T],
    timeout: float = DEFAULT_TIMEOUT,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    **kwargs,
) -> T:
    """Run ``action`` while holding the lock and return its result."""
    with with_lock(path, timeout=timeout, poll_interval=poll_interval, **kwargs):
        return action()


class LockManager:
    """
    Manages the locks swiftkit takes.

    Attributes:
        lock_path: Path of the state lock file
        downloads_dir: Directory holding the per-toolchain download locks
        timeout: State lock timeout in seconds
        poll_interval: Seconds between acquisition attempts
        reclaim_stale: Whether locks left by dead processes are reclaimed
    """

    def __init__(
        self,
        lock_path: Optional[Path] = None,
        downloads_dir: Optional[Path] = None,
        timeout: float = DEFAULT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        reclaim_stale: bool = True,
        checker: Optional[ProcessChecker] = None,
    ):
        self.lock_path = Path(lock_path) if lock_path else get_lock_file()
        self.downloads_dir = Path(downloads_dir) if downloads_dir else get_downloads_dir()
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.reclaim_stale = reclaim_stale
        self.checker = checker or ProcessChecker()

    @contextmanager
    def state_lock(self):
        """
        Acquire the state lock guarding config.json.

        Raises:
            LockTimeoutError: If the lock can't be acquired within timeout
        """
        with with_lock(
            self.lock_path,
            timeout=self.timeout,
            poll_interval=self.poll_interval,
            checker=self.checker,
            reclaim_stale=self.reclaim_stale,
        ) as lock:
            yield lock

    @contextmanager
    def download_lock(self, toolchain_name: str, timeout: float = 600):
        """
        Acquire the lock for downloading one toolchain archive.

        Args:
            toolchain_name: Canonical toolchain name (e.g. '5.10.1')
            timeout: Maximum wait time in seconds (long, downloads are slow)

        Raises:
            LockTimeoutError: If another process keeps downloading past timeout
        """
        safe_name = toolchain_name.replace("/", "-").replace("\\", "-").replace(":", "-")
        lock_path = self.downloads_dir / f"{safe_name}.download.lock"
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(lock_path, timeout=timeout)

        try:
            with lock:
                logger.debug(f"Acquired download lock: {lock_path}")
                yield
                logger.debug(f"Released download lock: {lock_path}")
        except Timeout as e:
            logger.error(
                f"Could not acquire download lock for {toolchain_name} after {timeout}s. "
                "Another process may be downloading this toolchain."
            )
            raise LockTimeoutError(lock_path, None, timeout) from e


__all__ = [
    "DEFAULT_TIMEOUT",
    "DEFAULT_POLL_INTERVAL",
    "ProcessChecker",
    "PidFileLock",
    "read_lock_owner",
    "acquire",
    "wait_for_lock",
    "with_lock",
    "run_with_lock",
    "LockManager",
]
