"""
Per-subject file storage.

Uploaded source files are copied to ``<files_root>/<subject_id>/`` under a
generated ``<base>_<uuid><ext>`` name. The generated name doubles as the
file id.
"""

import logging
import shutil
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .core.exceptions import StoreFailedError


logger = logging.getLogger(__name__)


class FileStorage:
    """
    Filesystem layout for uploaded documents.
    
    Example:
        >>> storage = FileStorage(Path("~/.localrag/files").expanduser(), reserved=["ollama", "database"])
        >>> path, file_id = storage.store_file(Path("notes.md"), "math")
    """

    def __init__(self, root: Path, reserved: Optional[Iterable[str]] = None):
        """
        Args:
            root: Directory holding one sub-directory per subject
            reserved: Directory names under root that are not subjects
        """
        self.root = Path(root)
        self.reserved = {name.lower() for name in (reserved or [])}

    def subject_dir(self, subject_id: str, create: bool = True) -> Path:
        """
        Directory of a subject.
        
        Raises:
            ValueError: If the subject id is not a safe single path component
        """
        self._validate_component(subject_id, "subject id")
        if subject_id.lower() in self.reserved:
            raise ValueError(f"Subject id '{subject_id}' is reserved")
        directory = self.root / subject_id
        if create:
            directory.mkdir(parents=True, exist_ok=True)
        return directory

    def file_path(self, subject_id: str, file_id: str) -> Path:
        self._validate_component(file_id, "file id")
        return self.subject_dir(subject_id, create=False) / file_id

    def store_file(
        self,
        source: Path,
        subject_id: str,
        original_filename: Optional[str] = None,
    ) -> Tuple[Path, str]:
        """
        Copy a source file into the subject directory under a unique name.
        
        Args:
            source: File to copy
            subject_id: Owning subject
            original_filename: Name used to build the stored name (source name if None)
            
        Returns:
            Tuple of (stored path, file id)
            
        Raises:
            StoreFailedError: If the copy fails; no partial copy is left behind
        """
        source = Path(source)
        name = Path(original_filename or source.name).name
        stem, extension = Path(name).stem, Path(name).suffix

        try:
            directory = self.subject_dir(subject_id)
        except (OSError, ValueError) as e:
            raise StoreFailedError(f"Failed to prepare storage for subject {subject_id}: {e}") from e

        file_id = f"{stem}_{uuid.uuid4()}{extension}"
        target = directory / file_id

        try:
            shutil.copyfile(source, target)
        except OSError as e:
            self.remove_file(target)
            raise StoreFailedError(f"Failed to store {name}: {e}") from e

        logger.info(f"Stored {name} as {target}")
        return target, file_id

    def remove_file(self, path: Path) -> bool:
        """
        Delete a stored file. A missing file is not an error.
        
        Returns:
            True if a file was deleted
            
        Raises:
            OSError: If the file exists but cannot be deleted
        """
        try:
            Path(path).unlink()
            return True
        except FileNotFoundError:
            return False

    def list_subject_files(self, subject_id: str) -> List[str]:
        """Stored file ids of a subject (empty if the subject has no directory)."""
        directory = self.subject_dir(subject_id, create=False)
        if not directory.is_dir():
            return []
        return sorted(p.name for p in directory.iterdir() if p.is_file())

    def remove_subject_dir(self, subject_id: str) -> bool:
        """
        Recursively delete a subject directory.
        
        Returns:
            True if a directory was deleted
        """
        directory = self.subject_dir(subject_id, create=False)
        if not directory.exists():
            return False
        shutil.rmtree(directory)
        logger.info(f"Removed subject directory {directory}")
        return True

    def file_info(self, subject_id: str, file_id: str) -> Optional[Dict[str, Any]]:
        """Size and modification time of a stored file, or None if missing."""
        path = self.file_path(subject_id, file_id)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        return {"path": str(path), "size": stat.st_size, "modified": stat.st_mtime}

    @staticmethod
    def _validate_component(value: str, label: str) -> None:
        if not value or value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
            raise ValueError(f"Invalid {label}: {value!r}")
