"""
Custom exceptions for the download manager.
"""

from typing import Optional


class DownloadError(Exception):
    """Base exception for all download errors."""
    pass


class InvalidURLError(DownloadError):
    """
    The URL could not be parsed or uses an unsupported scheme.
    """

    def __init__(self, url: str, reason: str = "unparseable URL"):
        super().__init__(f"Invalid URL: {url} ({reason})")
        self.url = url


class RedirectError(DownloadError):
    """
    Redirect handling failed.
    
    Raised when:
    - The redirect hop budget is exhausted
    - A redirect response carries no Location header
    """
    pass


class DownloadHTTPError(DownloadError):
    """
    The server answered with a non-200 status, or could not be reached.
    
    ``status`` is None for transport-level failures (DNS, refused connection).
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class DownloadTimeoutError(DownloadError):
    """The transfer exceeded its absolute deadline."""
    pass
