"""
Data models for the download manager.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class DownloadStatus(str, Enum):
    """Status carried by a per-download progress event."""
    STARTING = "starting"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class DownloadTask:
    """
    One URL to fetch within a download_all call.
    
    Attributes:
        url: Source URL as given by the caller
        destination_dir: Directory the file is written into
        download_id: Generated identifier, unique within the call
        index: Position of the URL in the caller's list
    """
    url: str
    destination_dir: Path
    download_id: str
    index: int


@dataclass(frozen=True)
class DownloadResult:
    """
    Outcome of one download task. Produced exactly once per input URL.
    
    Attributes:
        url: Source URL
        download_id: Identifier of the task that produced this result
        file_path: Local path of the written file (None on failure)
        filename: Final on-disk filename (empty when no name was derived)
        size: Final size in bytes as reported by the filesystem
        success: Whether the transfer completed
        error: Error message prefixed with the error class name
    """
    url: str
    download_id: str
    file_path: Optional[Path] = None
    filename: str = ""
    size: int = 0
    success: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "download_id": self.download_id,
            "file_path": str(self.file_path) if self.file_path else None,
            "filename": self.filename,
            "size": self.size,
            "success": self.success,
            "error": self.error,
        }


@dataclass(frozen=True)
class DownloadProgress:
    """
    Progress payload emitted while a task runs.
    
    ``percentage`` is computed from bytes read off the wire against the
    Content-Length header, so for compressed transfers both numbers are
    compressed sizes.
    """
    download_id: str
    url: str
    status: DownloadStatus
    filename: str = ""
    downloaded: int = 0
    total: int = 0
    percentage: int = 0
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.status in (DownloadStatus.COMPLETED, DownloadStatus.ERROR)
