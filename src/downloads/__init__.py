"""
Concurrent file downloader.

Fetches one or more URLs to local files in parallel with progress reporting,
manual redirect following and transport decompression. Every URL produces
exactly one DownloadResult; a failing URL never aborts its siblings.

Key components:
- core/: Result/progress models and the download error taxonomy
- decoders.py: Streaming gzip/deflate/br decoders
- manager.py: DownloadManager fan-out and per-URL transfer
"""

from .core.exceptions import (
    DownloadError,
    DownloadHTTPError,
    DownloadTimeoutError,
    InvalidURLError,
    RedirectError,
)
from .core.models import DownloadProgress, DownloadResult, DownloadStatus, DownloadTask
from .manager import DownloadConfig, DownloadManager

__version__ = "0.1.0"

__all__ = [
    "DownloadError",
    "DownloadHTTPError",
    "DownloadTimeoutError",
    "InvalidURLError",
    "RedirectError",
    "DownloadProgress",
    "DownloadResult",
    "DownloadStatus",
    "DownloadTask",
    "DownloadConfig",
    "DownloadManager",
]
