"""
Core models and exceptions for the download manager.
"""

from .exceptions import (
    DownloadError,
    DownloadHTTPError,
    DownloadTimeoutError,
    InvalidURLError,
    RedirectError,
)
from .models import DownloadProgress, DownloadResult, DownloadStatus, DownloadTask

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
]
