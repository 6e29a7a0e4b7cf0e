"""
Unit tests for download module.

Tests download functionality with mocked network requests.
"""

import hashlib

import pytest
import responses

from swiftkit.core.download import ChecksumError, DownloadProgress, download_file
from swiftkit.core.exceptions import DownloadError


URL = "https://download.test/swift.tar.gz"
BODY = b"x" * 200_000


class TestDownloadProgress:
    """Test DownloadProgress."""

    def test_percentage(self):
        assert DownloadProgress(50, 200).percentage == 25.0

    def test_unknown_total(self):
        progress = DownloadProgress(1024 * 1024, 0)
        assert progress.percentage == 0.0
        assert str(progress) == "1.0 MB"

    def test_str_with_total(self):
        assert str(DownloadProgress(1024 * 1024, 2 * 1024 * 1024)) == "1.0/2.0 MB (50.0%)"


class TestDownloadFile:
    """Test download_file."""

    @responses.activate
    def test_download(self, temp_dir):
        responses.add(responses.GET, URL, body=BODY)
        destination = temp_dir / "swift.tar.gz"

        result = download_file(URL, destination)

        assert result == destination
        assert destination.read_bytes() == BODY
        assert not (temp_dir / "swift.tar.gz.part").exists()

    @responses.activate
    def test_checksum_verified(self, temp_dir):
        responses.add(responses.GET, URL, body=BODY)

        download_file(
            URL, temp_dir / "swift.tar.gz", expected_sha256=hashlib.sha256(BODY).hexdigest()
        )

    @responses.activate
    def test_checksum_mismatch_leaves_nothing(self, temp_dir):
        responses.add(responses.GET, URL, body=BODY)
        destination = temp_dir / "swift.tar.gz"

        with pytest.raises(ChecksumError):
            download_file(URL, destination, expected_sha256="0" * 64)

        assert list(temp_dir.iterdir()) == []

    @responses.activate
    def test_progress_reports_completion(self, temp_dir):
        responses.add(responses.GET, URL, body=BODY, auto_calculate_content_length=True)
        reports = []

        download_file(URL, temp_dir / "swift.tar.gz", progress_callback=reports.append)

        assert reports
        assert reports[-1].bytes_downloaded == len(BODY)
        assert reports[-1].total_bytes == len(BODY)

    @responses.activate
    def test_retries_server_errors(self, temp_dir):
        responses.add(responses.GET, URL, status=503)
        responses.add(responses.GET, URL, body=BODY)
        sleeps = []

        download_file(URL, temp_dir / "swift.tar.gz", max_retries=3, sleep=sleeps.append)

        assert sleeps == [1]
        assert len(responses.calls) == 2

    @responses.activate
    def test_gives_up_after_max_retries(self, temp_dir):
        responses.add(responses.GET, URL, status=500)
        sleeps = []

        with pytest.raises(DownloadError, match="3 attempt"):
            download_file(URL, temp_dir / "swift.tar.gz", max_retries=3, sleep=sleeps.append)

        assert sleeps == [1, 2]

    @responses.activate
    def test_client_error_is_not_retried(self, temp_dir):
        responses.add(responses.GET, URL, status=404)
        sleeps = []

        with pytest.raises(DownloadError, match="1 attempt"):
            download_file(URL, temp_dir / "swift.tar.gz", sleep=sleeps.append)

        assert sleeps == []
        assert len(responses.calls) == 1

    def test_empty_url(self, temp_dir):
        with pytest.raises(ValueError):
            download_file("", temp_dir / "file")
