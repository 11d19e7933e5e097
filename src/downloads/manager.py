"""
Concurrent download manager.

This module provides a ThreadPoolExecutor-based downloader that:
- Fans out one task per URL and returns results in input order
- Isolates failures so one bad URL never aborts its siblings
- Follows 301/302/307/308 redirects manually within a hop budget
- Decodes gzip/deflate/br bodies while streaming them to disk
- Enforces an absolute per-transfer deadline
"""

import logging
import os
import posixpath
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Tuple
from urllib.parse import unquote, urljoin, urlparse

try:
    import requests
except ImportError:
    requests = None

from .core.exceptions import (
    DownloadError,
    DownloadHTTPError,
    DownloadTimeoutError,
    InvalidURLError,
    RedirectError,
)
from .core.models import DownloadProgress, DownloadResult, DownloadStatus, DownloadTask
from .decoders import get_decoder


logger = logging.getLogger(__name__)


# Some servers reject requests that do not look like a browser
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

DEFAULT_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
}

REDIRECT_STATUSES = (301, 302, 307, 308)

ProgressCallback = Callable[[DownloadProgress], None]


@dataclass
class DownloadConfig:
    """
    Configuration for the download manager.

    Attributes:
        max_workers: Maximum number of transfers in flight at once
        max_redirects: Redirect hops followed before failing
        timeout_seconds: Absolute deadline for a single transfer
        socket_timeout_seconds: Connect/read timeout for individual socket operations
        chunk_size: Bytes read off the wire per iteration
    """
    max_workers: int = 4
    max_redirects: int = 5
    timeout_seconds: float = 12 * 60 * 60
    socket_timeout_seconds: float = 60.0
    chunk_size: int = 64 * 1024


def _now_ms() -> int:
    return int(time.time() * 1000)


def parse_download_url(url: str) -> str:
    """
    Validate a download URL and return its path component.

    Raises:
        InvalidURLError: If the URL is not an absolute http(s) URL
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidURLError(str(url), "empty URL")
    try:
        parsed = urlparse(url.strip())
        # Accessing port validates it
        parsed.port
    except ValueError as e:
        raise InvalidURLError(url, str(e))
    if parsed.scheme not in ("http", "https"):
        raise InvalidURLError(url, f"unsupported scheme '{parsed.scheme}'")
    if not parsed.netloc:
        raise InvalidURLError(url, "missing host")
    return parsed.path


def derive_filename(url_path: str, timestamp_ms: int) -> str:
    """
    Derive an on-disk filename from a URL path.

    The last path segment is used; an empty segment yields
    ``download_<timestamp><ext>``. ``_<timestamp>`` is always inserted
    before the extension so repeated downloads of one URL never collide.

    Args:
        url_path: Path component of the URL (query already removed)
        timestamp_ms: Millisecond timestamp used for disambiguation

    Returns:
        Filename without any directory component
    """
    path = unquote(url_path or "")
    name = posixpath.basename(path).replace("\\", "_").split("?")[0]

    if not name or name in (".", ".."):
        extension = posixpath.splitext(path.rstrip("/"))[1] if "." in path else ""
        name = f"download_{timestamp_ms}{extension}"

    stem, extension = os.path.splitext(name)
    return f"{stem}_{timestamp_ms}{extension}"


def describe_error(error: Exception) -> str:
    """Format an error for DownloadResult.error, prefixed with its class name."""
    return f"{type(error).__name__}: {error}"


class DownloadManager:
    """
    Fetches URLs concurrently to local files.

    Holds no state between calls; every download_all call is independent and
    safely retryable. Progress callbacks are invoked from worker threads.

    Example:
        >>> manager = DownloadManager()
        >>> results = manager.download_all(["https://example.com/a.zip"], Path("/tmp/dl"))
        >>> results[0].success
    """

    def __init__(
        self,
        config: Optional[DownloadConfig] = None,
        session_factory: Optional[Callable[[], object]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the download manager.

        Args:
            config: Download configuration (defaults if None)
            session_factory: Builds one HTTP session per task (defaults to requests.Session)
            clock: Monotonic clock used for the absolute transfer deadline
        """
        if session_factory is None:
            if requests is None:
                raise ImportError(
                    "requests library is required for DownloadManager. "
                    "Install with: pip install requests"
                )
            session_factory = requests.Session

        self.config = config or DownloadConfig()
        self._session_factory = session_factory
        self._clock = clock

    def download_all(
        self,
        urls: List[str],
        dest_dir: Path,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[DownloadResult]:
        """
        Download every URL into dest_dir.

        Args:
            urls: URLs to fetch
            dest_dir: Destination directory (created if missing)
            on_progress: Optional callback receiving DownloadProgress events

        Returns:
            One DownloadResult per input URL, in input order
        """
        if not urls:
            return []

        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)

        batch_ms = _now_ms()
        tasks = [
            DownloadTask(
                url=url,
                destination_dir=dest_dir,
                download_id=f"download_{batch_ms}_{index}",
                index=index,
            )
            for index, url in enumerate(urls)
        ]

        workers = max(1, min(self.config.max_workers, len(tasks)))
        logger.info(f"Starting {len(tasks)} download(s) into {dest_dir} with {workers} worker(s)")

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="download") as executor:
            futures = [executor.submit(self.download_one, task, on_progress) for task in tasks]
            results = []
            for task, future in zip(tasks, futures):
                try:
                    results.append(future.result())
                except Exception as e:
                    # download_one reports its own failures; this only covers a broken worker
                    logger.exception(f"Download worker crashed for {task.url}")
                    results.append(DownloadResult(
                        url=task.url,
                        download_id=task.download_id,
                        success=False,
                        error=describe_error(e),
                    ))

        succeeded = sum(1 for r in results if r.success)
        logger.info(f"Downloads finished: {succeeded}/{len(results)} succeeded")
        return results

    def download_one(
        self,
        task: DownloadTask,
        on_progress: Optional[ProgressCallback] = None,
    ) -> DownloadResult:
        """
        Run a single download task to completion.

        Never raises for transfer failures; they are returned as a failed
        DownloadResult after an ERROR progress event.
        """
        filename = ""
        file_path: Optional[Path] = None

        try:
            url_path = parse_download_url(task.url)
            filename = derive_filename(url_path, _now_ms())
            deadline = self._clock() + self.config.timeout_seconds

            self._emit(on_progress, DownloadProgress(
                download_id=task.download_id,
                url=task.url,
                status=DownloadStatus.STARTING,
                filename=filename,
            ))

            session = self._session_factory()
            try:
                response = self._open(session, task.url, deadline)
                try:
                    file_path, handle = self._reserve_file(task.destination_dir, filename)
                    filename = file_path.name
                    with handle:
                        self._stream_body(response, handle, task, filename, deadline, on_progress)
                finally:
                    response.close()
            finally:
                session.close()

            size = file_path.stat().st_size
            logger.info(f"Downloaded {task.url} -> {file_path} ({size} bytes)")

            self._emit(on_progress, DownloadProgress(
                download_id=task.download_id,
                url=task.url,
                status=DownloadStatus.COMPLETED,
                filename=filename,
                downloaded=size,
                total=size,
                percentage=100,
            ))

            return DownloadResult(
                url=task.url,
                download_id=task.download_id,
                file_path=file_path,
                filename=filename,
                size=size,
                success=True,
            )

        except Exception as e:
            error = describe_error(self._translate(e))
            logger.error(f"Download failed for {task.url}: {error}")

            if file_path is not None:
                self._remove_partial(file_path)

            self._emit(on_progress, DownloadProgress(
                download_id=task.download_id,
                url=task.url,
                status=DownloadStatus.ERROR,
                filename=filename,
                error=error,
            ))

            return DownloadResult(
                url=task.url,
                download_id=task.download_id,
                filename=filename,
                success=False,
                error=error,
            )

    def _open(self, session, url: str, deadline: float):
        """
        Issue the GET and follow redirects manually.

        Returns:
            The final 200 response, body not yet consumed

        Raises:
            RedirectError: On a redirect without Location or too many hops
            DownloadHTTPError: On any other non-200 status
        """
        current = url
        redirects = 0

        while True:
            self._check_deadline(deadline)
            response = session.get(
                current,
                headers=dict(DEFAULT_HEADERS),
                stream=True,
                allow_redirects=False,
                timeout=self.config.socket_timeout_seconds,
            )
            status = response.status_code

            if status in REDIRECT_STATUSES:
                location = response.headers.get("Location")
                response.close()
                if redirects >= self.config.max_redirects:
                    raise RedirectError("Too many redirects")
                if not location:
                    raise RedirectError("Redirect without location header")
                redirects += 1
                current = urljoin(current, location)
                logger.debug(f"Following redirect {redirects}/{self.config.max_redirects} to {current}")
                continue

            if status != 200:
                reason = getattr(response, "reason", "") or ""
                response.close()
                raise DownloadHTTPError(f"HTTP {status}: {reason}".rstrip(), status=status)

            return response

    def _reserve_file(self, directory: Path, filename: str) -> Tuple[Path, BinaryIO]:
        """
        Create the output file exclusively, adding a counter on collision.

        Returns:
            Tuple of (path, open binary handle)
        """
        stem, extension = os.path.splitext(filename)
        counter = 0
        while True:
            candidate = filename if counter == 0 else f"{stem}_{counter}{extension}"
            path = directory / candidate
            try:
                return path, open(path, "xb")
            except FileExistsError:
                counter += 1

    def _stream_body(
        self,
        response,
        handle: BinaryIO,
        task: DownloadTask,
        filename: str,
        deadline: float,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        """Stream the raw body through its decoder into handle."""
        decoder = get_decoder(response.headers.get("Content-Encoding"))

        try:
            total = int(response.headers.get("Content-Length") or 0)
        except ValueError:
            total = 0

        downloaded = 0
        for chunk in response.raw.stream(self.config.chunk_size, decode_content=False):
            self._check_deadline(deadline)
            if not chunk:
                continue

            # Progress counts bytes as received, before decoding
            downloaded += len(chunk)
            handle.write(decoder.decompress(chunk))

            if total > 0:
                self._emit(on_progress, DownloadProgress(
                    download_id=task.download_id,
                    url=task.url,
                    status=DownloadStatus.DOWNLOADING,
                    filename=filename,
                    downloaded=downloaded,
                    total=total,
                    percentage=int(downloaded * 100 / total + 0.5),
                ))

        handle.write(decoder.flush())

    def _check_deadline(self, deadline: float) -> None:
        if self._clock() > deadline:
            raise DownloadTimeoutError("Download timeout")

    def _translate(self, error: Exception) -> Exception:
        """Map transport library errors onto the download taxonomy."""
        if isinstance(error, DownloadError) or requests is None:
            return error
        if isinstance(error, requests.exceptions.Timeout):
            return DownloadTimeoutError(f"Download timeout: {error}")
        if isinstance(error, (requests.exceptions.InvalidURL,
                              requests.exceptions.MissingSchema,
                              requests.exceptions.InvalidSchema)):
            return InvalidURLError(str(getattr(error.request, "url", "") or ""), str(error))
        if isinstance(error, requests.exceptions.RequestException):
            return DownloadHTTPError(f"Request failed: {error}")
        return error

    def _remove_partial(self, path: Path) -> None:
        try:
            path.unlink()
            logger.debug(f"Removed partial download {path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to remove partial download {path}: {e}")

    def _emit(self, on_progress: Optional[ProgressCallback], event: DownloadProgress) -> None:
        if on_progress is None:
            return
        try:
            on_progress(event)
        except Exception as e:
            logger.warning(f"Progress callback raised for {event.download_id}: {e}")
