"""
Unit tests for the concurrent download manager.

Tests for:
- URL validation and filename derivation
- Ordered, failure-isolated download_all
- Manual redirect handling
- Compressed bodies and progress percentages
- Timeouts and partial-file cleanup
"""

import gzip
import itertools
import threading
from pathlib import Path

import pytest
import requests

from downloads import (
    DownloadConfig,
    DownloadManager,
    DownloadStatus,
    InvalidURLError,
)
from downloads.core.models import DownloadTask
from downloads.manager import derive_filename, describe_error, parse_download_url


# ============================================================================
# Fakes
# ============================================================================

class FakeRaw:
    """urllib3-style raw stream yielding preset chunks."""

    def __init__(self, chunks, fail_after=None):
        self.chunks = list(chunks)
        self.fail_after = fail_after

    def stream(self, chunk_size, decode_content=True):
        assert decode_content is False
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise OSError("connection reset")
            yield chunk


class FakeResponse:
    def __init__(self, status_code=200, body=b"", headers=None, chunks=None, reason="", fail_after=None):
        self.status_code = status_code
        self.headers = dict(headers or {})
        self.reason = reason
        chunks = chunks if chunks is not None else ([body] if body else [])
        self.raw = FakeRaw(chunks, fail_after=fail_after)
        self.closed = False

    def close(self):
        self.closed = True


class FakeSession:
    """Routes GET requests to canned responses by URL."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []
        self._lock = threading.Lock()

    def get(self, url, **kwargs):
        with self._lock:
            self.requests.append((url, kwargs))
        route = self.routes.get(url)
        if route is None:
            raise requests.exceptions.ConnectionError(f"Failed to resolve {url}")
        if isinstance(route, Exception):
            raise route
        return route() if callable(route) else route

    def close(self):
        pass


def make_manager(routes, **config_kwargs):
    session = FakeSession(routes)
    manager = DownloadManager(
        config=DownloadConfig(**config_kwargs),
        session_factory=lambda: session,
    )
    return manager, session


# ============================================================================
# Helpers
# ============================================================================

class TestParseDownloadUrl:
    """Tests for parse_download_url."""

    def test_returns_path(self):
        assert parse_download_url("https://example.com/files/a.zip?x=1") == "/files/a.zip"

    @pytest.mark.parametrize("url", ["", "   ", "ftp://example.com/a", "not a url", "https:///a.zip"])
    def test_rejects_invalid(self, url):
        with pytest.raises(InvalidURLError):
            parse_download_url(url)

    def test_rejects_bad_port(self):
        with pytest.raises(InvalidURLError):
            parse_download_url("http://example.com:99999/a")


class TestDeriveFilename:
    """Tests for derive_filename."""

    def test_inserts_timestamp_before_extension(self):
        assert derive_filename("/files/report.pdf", 123) == "report_123.pdf"

    def test_no_extension(self):
        assert derive_filename("/bin/ollama-linux-amd64", 5) == "ollama-linux-amd64_5"

    def test_root_path_synthesizes_name(self):
        name = derive_filename("/", 42)
        assert name.startswith("download_42")

    def test_empty_path_synthesizes_name(self):
        assert derive_filename("", 7).startswith("download_7")

    def test_percent_encoded_name_is_unquoted(self):
        assert derive_filename("/my%20file.txt", 1) == "my file_1.txt"

    def test_never_contains_directories(self):
        name = derive_filename("/a/b/..%2F..%2Fetc%2Fpasswd", 1)
        assert "/" not in name


class TestDescribeError:
    def test_prefixes_class_name(self):
        assert describe_error(ValueError("bad")) == "ValueError: bad"


# ============================================================================
# download_all
# ============================================================================

class TestDownloadAll:
    """Tests for DownloadManager.download_all."""

    def test_empty_input(self, tmp_path):
        manager, _ = make_manager({})
        assert manager.download_all([], tmp_path) == []

    def test_successful_download(self, tmp_path):
        body = b"hello world" * 10
        manager, session = make_manager({
            "https://example.com/a.txt": FakeResponse(body=body, headers={"Content-Length": str(len(body))}),
        })

        results = manager.download_all(["https://example.com/a.txt"], tmp_path)

        assert len(results) == 1
        result = results[0]
        assert result.success is True
        assert result.error is None
        assert result.size == len(body)
        assert result.file_path.read_bytes() == body
        assert result.filename.startswith("a_") and result.filename.endswith(".txt")

        url, kwargs = session.requests[0]
        assert kwargs["stream"] is True
        assert kwargs["allow_redirects"] is False
        assert "br" in kwargs["headers"]["Accept-Encoding"]

    def test_creates_destination_directory(self, tmp_path):
        dest = tmp_path / "nested" / "dir"
        manager, _ = make_manager({"https://example.com/a": FakeResponse(body=b"x")})

        results = manager.download_all(["https://example.com/a"], dest)

        assert results[0].success
        assert dest.is_dir()

    def test_invalid_url_is_isolated(self, tmp_path):
        manager, _ = make_manager({"https://example.com/ok.bin": FakeResponse(body=b"ok")})

        results = manager.download_all(["not-a-url", "https://example.com/ok.bin"], tmp_path)

        assert [r.success for r in results] == [False, True]
        assert results[0].error.startswith("InvalidURLError")
        assert results[0].url == "not-a-url"

    def test_unresolvable_host_reports_http_error(self, tmp_path):
        manager, _ = make_manager({})

        results = manager.download_all(["https://bad.invalid/x"], tmp_path)

        assert len(results) == 1
        assert results[0].success is False
        assert "HTTPError" in results[0].error or "InvalidURL" in results[0].error

    def test_results_preserve_input_order(self, tmp_path):
        routes = {f"https://example.com/{i}.bin": FakeResponse(body=bytes([i]) * 3) for i in range(6)}
        routes["https://example.com/3.bin"] = FakeResponse(status_code=500, reason="Server Error")
        urls = [f"https://example.com/{i}.bin" for i in range(6)]
        manager, _ = make_manager(routes, max_workers=3)

        results = manager.download_all(urls, tmp_path)

        assert [r.url for r in results] == urls
        assert [r.success for r in results] == [True, True, True, False, True, True]
        assert len({r.download_id for r in results}) == 6

    def test_http_error_status(self, tmp_path):
        manager, _ = make_manager({
            "https://example.com/missing": FakeResponse(status_code=404, reason="Not Found"),
        })

        result = manager.download_all(["https://example.com/missing"], tmp_path)[0]

        assert result.success is False
        assert result.error == "DownloadHTTPError: HTTP 404: Not Found"
        assert list(tmp_path.iterdir()) == []

    def test_progress_events(self, tmp_path):
        chunks = [b"a" * 25, b"b" * 25, b"c" * 50]
        manager, _ = make_manager({
            "https://example.com/f.bin": FakeResponse(chunks=chunks, headers={"Content-Length": "100"}),
        })
        events = []

        manager.download_all(["https://example.com/f.bin"], tmp_path, events.append)

        statuses = [e.status for e in events]
        assert statuses[0] == DownloadStatus.STARTING
        assert statuses[-1] == DownloadStatus.COMPLETED
        downloading = [e for e in events if e.status == DownloadStatus.DOWNLOADING]
        assert [e.percentage for e in downloading] == [25, 50, 100]
        assert [e.downloaded for e in downloading] == [25, 50, 100]
        assert sum(1 for e in events if e.completed) == 1

    def test_no_progress_without_content_length(self, tmp_path):
        manager, _ = make_manager({"https://example.com/f": FakeResponse(chunks=[b"a", b"b"])})
        events = []

        manager.download_all(["https://example.com/f"], tmp_path, events.append)

        assert DownloadStatus.DOWNLOADING not in [e.status for e in events]

    def test_error_event_is_terminal(self, tmp_path):
        manager, _ = make_manager({})
        events = []

        manager.download_all(["https://example.com/nowhere"], tmp_path, events.append)

        assert events[-1].status == DownloadStatus.ERROR
        assert events[-1].error
        assert events[-1].completed

    def test_callback_errors_do_not_fail_download(self, tmp_path):
        manager, _ = make_manager({"https://example.com/f": FakeResponse(body=b"data")})

        def explode(event):
            raise RuntimeError("ui went away")

        results = manager.download_all(["https://example.com/f"], tmp_path, explode)

        assert results[0].success is True


class TestRedirects:
    """Tests for manual redirect following."""

    def test_follows_relative_redirect(self, tmp_path):
        manager, session = make_manager({
            "https://example.com/latest": FakeResponse(status_code=302, headers={"Location": "/v2/file.tgz"}),
            "https://example.com/v2/file.tgz": FakeResponse(body=b"payload"),
        })

        result = manager.download_all(["https://example.com/latest"], tmp_path)[0]

        assert result.success is True
        assert result.file_path.read_bytes() == b"payload"
        assert [url for url, _ in session.requests] == [
            "https://example.com/latest",
            "https://example.com/v2/file.tgz",
        ]

    def test_filename_comes_from_original_url(self, tmp_path):
        manager, _ = make_manager({
            "https://example.com/latest.tgz": FakeResponse(
                status_code=301, headers={"Location": "https://cdn.example.com/blob"}
            ),
            "https://cdn.example.com/blob": FakeResponse(body=b"x"),
        })

        result = manager.download_all(["https://example.com/latest.tgz"], tmp_path)[0]

        assert result.filename.startswith("latest_")
        assert result.filename.endswith(".tgz")

    def test_too_many_redirects(self, tmp_path):
        manager, session = make_manager(
            {"https://example.com/loop": lambda: FakeResponse(
                status_code=307, headers={"Location": "https://example.com/loop"}
            )},
            max_redirects=2,
        )

        result = manager.download_all(["https://example.com/loop"], tmp_path)[0]

        assert result.success is False
        assert result.error == "RedirectError: Too many redirects"
        assert len(session.requests) == 3

    def test_redirect_without_location(self, tmp_path):
        manager, _ = make_manager({"https://example.com/r": FakeResponse(status_code=308)})

        result = manager.download_all(["https://example.com/r"], tmp_path)[0]

        assert result.error == "RedirectError: Redirect without location header"


class TestCompressedBodies:
    """Tests for Content-Encoding handling."""

    def test_gzip_body_is_decoded(self, tmp_path):
        data = b"line of text\n" * 200
        compressed = gzip.compress(data)
        half = len(compressed) // 2
        manager, _ = make_manager({
            "https://example.com/data.txt": FakeResponse(
                chunks=[compressed[:half], compressed[half:]],
                headers={"Content-Encoding": "gzip", "Content-Length": str(len(compressed))},
            ),
        })
        events = []

        result = manager.download_all(["https://example.com/data.txt"], tmp_path, events.append)[0]

        assert result.success is True
        assert result.file_path.read_bytes() == data
        downloading = [e for e in events if e.status == DownloadStatus.DOWNLOADING]
        # Percentage tracks compressed bytes against the compressed length
        assert downloading[-1].downloaded == len(compressed)
        assert downloading[-1].percentage == 100

    def test_unsupported_encoding_fails(self, tmp_path):
        manager, _ = make_manager({
            "https://example.com/x": FakeResponse(body=b"??", headers={"Content-Encoding": "zstd"}),
        })

        result = manager.download_all(["https://example.com/x"], tmp_path)[0]

        assert result.success is False
        assert result.error.startswith("DownloadError")
        assert list(tmp_path.iterdir()) == []


class TestFailures:
    """Tests for timeouts, transport errors and cleanup."""

    def test_deadline_exceeded(self, tmp_path):
        clock_values = itertools.chain([0.0], itertools.repeat(100.0))
        manager = DownloadManager(
            config=DownloadConfig(timeout_seconds=10),
            session_factory=lambda: FakeSession({"https://example.com/slow": FakeResponse(body=b"x")}),
            clock=lambda: next(clock_values),
        )

        result = manager.download_all(["https://example.com/slow"], tmp_path)[0]

        assert result.success is False
        assert result.error == "DownloadTimeoutError: Download timeout"

    def test_requests_timeout_is_translated(self, tmp_path):
        manager, _ = make_manager({"https://example.com/t": requests.exceptions.ReadTimeout("read timed out")})

        result = manager.download_all(["https://example.com/t"], tmp_path)[0]

        assert result.error.startswith("DownloadTimeoutError")

    def test_partial_file_removed_on_stream_error(self, tmp_path):
        manager, _ = make_manager({
            "https://example.com/big.bin": FakeResponse(chunks=[b"a" * 10, b"b" * 10], fail_after=1),
        })

        result = manager.download_all(["https://example.com/big.bin"], tmp_path)[0]

        assert result.success is False
        assert result.file_path is None
        assert list(tmp_path.iterdir()) == []

    def test_response_closed_after_failure(self, tmp_path):
        response = FakeResponse(chunks=[b"a"], fail_after=0)
        manager, _ = make_manager({"https://example.com/f": response})

        manager.download_all(["https://example.com/f"], tmp_path)

        assert response.closed is True


class TestReserveFile:
    """Tests for collision-free file creation."""

    def test_adds_counter_on_collision(self, tmp_path):
        manager, _ = make_manager({})
        (tmp_path / "a_1.txt").write_bytes(b"existing")

        path, handle = manager._reserve_file(tmp_path, "a_1.txt")
        handle.close()

        assert path.name == "a_1_1.txt"
        assert (tmp_path / "a_1.txt").read_bytes() == b"existing"

    def test_download_one_never_overwrites(self, tmp_path):
        manager, _ = make_manager({"https://example.com/a.txt": FakeResponse(body=b"new")})
        task = DownloadTask(
            url="https://example.com/a.txt",
            destination_dir=tmp_path,
            download_id="download_1_0",
            index=0,
        )

        first = manager.download_one(task)
        second = manager.download_one(task)

        assert first.success and second.success
        assert first.file_path != second.file_path
