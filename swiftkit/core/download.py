"""
Streaming HTTP downloads for toolchain archives.

Features:
- Streams the response body to a ``.part`` file next to the destination and
  renames it into place only once complete, so an interrupted download never
  looks like a finished archive
- Retry with exponential backoff on network errors and 5xx responses
- Optional SHA256 verification while streaming
- Throttled progress callbacks

Usage:
    from swiftkit.core.download import download_file

    download_file(url, downloads_dir / "swift-5.10.1-RELEASE-ubuntu22.04.tar.gz")
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests
from requests.exceptions import HTTPError, RequestException

from swiftkit.core.exceptions import DownloadError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
PROGRESS_INTERVAL = 0.5


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: int  # 0 when the server sent no length

    @property
    def percentage(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return self.bytes_downloaded / self.total_bytes * 100

    def __str__(self) -> str:
        mb_downloaded = self.bytes_downloaded / 1024 / 1024
        if self.total_bytes > 0:
            mb_total = self.total_bytes / 1024 / 1024
            return f"{mb_downloaded:.1f}/{mb_total:.1f} MB ({self.percentage:.1f}%)"
        return f"{mb_downloaded:.1f} MB"


class ChecksumError(DownloadError):
    """Downloaded bytes do not match the expected SHA256."""

    pass


def _is_retryable(error: RequestException) -> bool:
    if isinstance(error, HTTPError) and error.response is not None:
        return error.response.status_code >= 500
    return True


def download_file(
    url: str,
    destination: Path,
    expected_sha256: Optional[str] = None,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    timeout: int = 30,
    max_retries: int = 3,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Path:
    """
    Download ``url`` to ``destination``.

    Args:
        url: URL to download from
        destination: Final path of the file
        expected_sha256: Expected SHA256 hash (verified during download)
        progress_callback: Called with DownloadProgress at most every 0.5s
        timeout: Request timeout in seconds
        max_retries: Maximum number of attempts
        session: requests session to use (default: module level requests)
        sleep: Sleep function used between attempts

    Returns:
        Path to the downloaded file

    Raises:
        DownloadError: If all attempts fail or the server returns 4xx
        ChecksumError: If the SHA256 does not match
    """
    if not url:
        raise ValueError("URL cannot be empty")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    attempts = max(1, max_retries)

    for attempt in range(attempts):
        try:
            return _download_once(
                url, destination, expected_sha256, progress_callback, timeout, session
            )
        except RequestException as e:
            if not _is_retryable(e) or attempt == attempts - 1:
                raise DownloadError(
                    f"Download of {url} failed after {attempt + 1} attempt(s): {e}"
                ) from e

            backoff_seconds = 2**attempt
            logger.warning(
                f"Download attempt {attempt + 1} failed: {e}. "
                f"Retrying in {backoff_seconds}s..."
            )
            sleep(backoff_seconds)

    raise DownloadError(f"Download of {url} failed")


def _download_once(
    url: str,
    destination: Path,
    expected_sha256: Optional[str],
    progress_callback: Optional[Callable[[DownloadProgress], None]],
    timeout: int,
    session: Optional[requests.Session],
) -> Path:
    partial = destination.with_name(destination.name + ".part")
    getter = session.get if session is not None else requests.get

    logger.info(f"Downloading {url}")
    response = getter(url, stream=True, timeout=timeout, allow_redirects=True)
    try:
        response.raise_for_status()

        total = int(response.headers.get("content-length") or 0)
        hasher = hashlib.sha256() if expected_sha256 else None
        downloaded = 0
        last_report = 0.0

        with open(partial, "wb") as f:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if not chunk:
                    continue
                f.write(chunk)
                downloaded += len(chunk)
                if hasher:
                    hasher.update(chunk)

                now = time.monotonic()
                if progress_callback and (
                    now - last_report >= PROGRESS_INTERVAL or downloaded == total
                ):
                    progress_callback(DownloadProgress(downloaded, total))
                    last_report = now
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    finally:
        response.close()

    if hasher is not None:
        actual = hasher.hexdigest()
        if actual.lower() != expected_sha256.lower():
            partial.unlink(missing_ok=True)
            raise ChecksumError(
                f"Checksum mismatch for {destination.name}: "
                f"expected {expected_sha256}, got {actual}"
            )
        logger.debug("Checksum verified successfully")

    partial.replace(destination)
    logger.info(f"Download complete: {destination}")
    return destination


__all__ = ["DownloadProgress", "ChecksumError", "download_file"]
