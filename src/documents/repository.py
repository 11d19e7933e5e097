"""
File record repository.

The ingestion pipeline only needs create / get / delete-by-id /
delete-by-subject on file records. FileRepository is that contract;
SqliteFileRepository is the bundled implementation.
"""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from .core.exceptions import FileRecordError
from .core.models import FileRecord


logger = logging.getLogger(__name__)


class FileRepository(ABC):
    """
    Abstract base class for file record storage.
    """

    @abstractmethod
    def create_file(
        self,
        file_id: str,
        subject_id: str,
        original_filename: str,
        stored_path: Path,
    ) -> FileRecord:
        """
        Create a file record.
        
        A failed create must not leave a row behind.
        
        Raises:
            FileRecordError: If the record cannot be created
        """
        pass

    @abstractmethod
    def get_file(self, file_id: str) -> Optional[FileRecord]:
        """
        Get a file record by id, or None.

        Raises:
            FileRecordError: If the record cannot be read
        """
        pass

    @abstractmethod
    def list_files(self, subject_id: str) -> List[FileRecord]:
        """All file records of a subject. Raises FileRecordError on read failure."""
        pass

    @abstractmethod
    def delete_file(self, file_id: str) -> bool:
        """
        Delete a file record.
        
        Returns:
            True if a record was deleted
        """
        pass

    @abstractmethod
    def delete_files_by_subject(self, subject_id: str) -> int:
        """
        Delete every file record of a subject.
        
        Returns:
            Number of records deleted
        """
        pass

    def close(self) -> None:
        """Release any held resources."""
        pass


class SqliteFileRepository(FileRepository):
    """
    SQLite-based implementation of the file repository.
    
    Uses one ``files`` table; every statement commits before returning.
    """

    def __init__(self, db_path: Union[Path, str], auto_init: bool = True):
        """
        Args:
            db_path: SQLite database file (":memory:" for an in-memory repository)
            auto_init: Whether to create tables automatically
        """
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        self._lock = threading.RLock()
        self.conn = None
        self._connect()

        if auto_init:
            self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        logger.debug(f"Connected to file repository: {self.db_path}")

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._lock:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS files (
                    file_id TEXT PRIMARY KEY,
                    subject_id TEXT NOT NULL,
                    original_filename TEXT NOT NULL,
                    stored_path TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            self.conn.execute("""
                CREATE INDEX IF NOT EXISTS ix_files_subject
                ON files (subject_id)
            """)
            self.conn.commit()
        logger.debug("Initialized file repository schema")

    def create_file(
        self,
        file_id: str,
        subject_id: str,
        original_filename: str,
        stored_path: Path,
    ) -> FileRecord:
        record = FileRecord(
            file_id=file_id,
            subject_id=subject_id,
            original_filename=original_filename,
            stored_path=Path(stored_path),
        )
        with self._lock:
            try:
                self.conn.execute(
                    """
                    INSERT INTO files (file_id, subject_id, original_filename, stored_path, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        record.file_id,
                        record.subject_id,
                        record.original_filename,
                        str(record.stored_path),
                        record.created_at.isoformat(),
                    ),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise FileRecordError(f"Failed to create file record {file_id}: {e}") from e

        logger.debug(f"Created file record {file_id} for subject {subject_id}")
        return record

    def get_file(self, file_id: str) -> Optional[FileRecord]:
        with self._lock:
            try:
                row = self.conn.execute(
                    "SELECT * FROM files WHERE file_id = ?", (file_id,)
                ).fetchone()
            except sqlite3.Error as e:
                raise FileRecordError(f"Failed to read file record {file_id}: {e}") from e
        return self._row_to_record(row) if row else None

    def list_files(self, subject_id: str) -> List[FileRecord]:
        with self._lock:
            try:
                rows = self.conn.execute(
                    "SELECT * FROM files WHERE subject_id = ? ORDER BY created_at, file_id",
                    (subject_id,),
                ).fetchall()
            except sqlite3.Error as e:
                raise FileRecordError(f"Failed to list file records of {subject_id}: {e}") from e
        return [self._row_to_record(row) for row in rows]

    def delete_file(self, file_id: str) -> bool:
        with self._lock:
            try:
                cursor = self.conn.execute("DELETE FROM files WHERE file_id = ?", (file_id,))
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise FileRecordError(f"Failed to delete file record {file_id}: {e}") from e
        return cursor.rowcount > 0

    def delete_files_by_subject(self, subject_id: str) -> int:
        with self._lock:
            try:
                cursor = self.conn.execute("DELETE FROM files WHERE subject_id = ?", (subject_id,))
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise FileRecordError(f"Failed to delete file records of {subject_id}: {e}") from e
        return cursor.rowcount

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> FileRecord:
        return FileRecord(
            file_id=row["file_id"],
            subject_id=row["subject_id"],
            original_filename=row["original_filename"],
            stored_path=Path(row["stored_path"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
