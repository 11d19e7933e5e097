"""
Vector Store - chunk persistence and nearest-neighbor search.

Stores (subject, file, text, embedding) tuples in a single sqlite-vec
``vec0`` virtual table. This is the only writer of embedding rows; ingestion
and deletion paths go through it rather than writing SQL directly.
"""

import logging
import math
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import List, Optional, Sequence, Union

try:
    import sqlite_vec
except ImportError:
    sqlite_vec = None

from .contracts.models import ChunkRecord, SearchHit
from .exceptions import DimensionMismatchError, VectorStoreError


logger = logging.getLogger(__name__)

DEFAULT_TABLE = "embeddings"

# vec0 caps k for KNN queries; larger or unbounded searches use an exact scan
MAX_KNN_K = 4096


class VectorStore:
    """
    Storage interface for embedded chunks.

    Every operation is synchronous and committed before it returns, so an
    insert is visible to the next search.

    Example:
        >>> store = VectorStore(Path("database.db"), dimensions=768)
        >>> chunk_id = store.insert("math", "notes_ab12.md", "Pythagoras...", vector)
        >>> store.search(vector, limit=3, subject_id="math")[0].chunk_id == chunk_id
        True
    """

    def __init__(
        self,
        db_path: Union[Path, str],
        dimensions: int = 768,
        table: str = DEFAULT_TABLE,
        auto_init: bool = True,
    ):
        """
        Initialize the vector store.

        Args:
            db_path: SQLite database file (":memory:" for an in-memory store)
            dimensions: Fixed embedding dimensionality for this deployment
            table: Virtual table name
            auto_init: Whether to create the table automatically

        Raises:
            VectorStoreError: If the database or extension cannot be opened
        """
        if sqlite_vec is None:
            raise ImportError(
                "sqlite-vec library is required for VectorStore. "
                "Install with: pip install sqlite-vec"
            )
        if dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {dimensions}")
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table}")

        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        self.dimensions = dimensions
        self.table = table
        self._lock = threading.RLock()
        self.conn: Optional[sqlite3.Connection] = None
        self._connect()

        if auto_init:
            self._init_schema()

    def _connect(self) -> None:
        """Open the connection and load the sqlite-vec extension."""
        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.enable_load_extension(True)
            sqlite_vec.load(self.conn)
            self.conn.enable_load_extension(False)
        except (sqlite3.Error, AttributeError, OSError) as e:
            raise VectorStoreError(f"Failed to open vector store at {self.db_path}: {e}") from e
        logger.debug(f"Connected to vector store: {self.db_path}")

    def _init_schema(self) -> None:
        """Create the vec0 table if it does not exist."""
        with self._lock:
            try:
                self.conn.execute(f"""
                    CREATE VIRTUAL TABLE IF NOT EXISTS {self.table} USING vec0(
                        chunk_id TEXT PRIMARY KEY,
                        subject_id TEXT,
                        file_id TEXT,
                        +text TEXT,
                        embedding float[{self.dimensions}]
                    )
                """)
                self.conn.commit()
            except sqlite3.Error as e:
                raise VectorStoreError(f"Failed to create vector table {self.table}: {e}") from e
        logger.debug(f"Initialized vector table {self.table} (dimensions={self.dimensions})")

    def vec_version(self) -> str:
        """Version of the loaded sqlite-vec extension."""
        row = self.conn.execute("SELECT vec_version()").fetchone()
        return row[0]

    # =========================================================================
    # Writes
    # =========================================================================

    def insert(
        self,
        subject_id: str,
        file_id: str,
        text: str,
        embedding: Sequence[float],
    ) -> str:
        """
        Store one chunk under a freshly generated id.

        Args:
            subject_id: Owning subject
            file_id: Owning file
            text: Chunk text
            embedding: Vector of exactly ``dimensions`` floats

        Returns:
            The generated chunk id

        Raises:
            DimensionMismatchError: If the vector has the wrong length
            VectorStoreError: If the write fails
        """
        blob = self._serialize(embedding)
        chunk_id = str(uuid.uuid4())

        with self._lock:
            try:
                self.conn.execute(
                    f"INSERT INTO {self.table} (chunk_id, subject_id, file_id, text, embedding) "
                    f"VALUES (?, ?, ?, ?, ?)",
                    (chunk_id, subject_id, file_id, text, blob),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise VectorStoreError(f"Failed to insert chunk for file {file_id}: {e}") from e

        return chunk_id

    def delete_by_file(self, file_id: str) -> int:
        """
        Delete every chunk of a file.

        Returns:
            Number of chunks deleted
        """
        return self._delete_where("file_id", file_id)

    def delete_by_subject(self, subject_id: str) -> int:
        """
        Delete every chunk of a subject.

        Returns:
            Number of chunks deleted
        """
        return self._delete_where("subject_id", subject_id)

    def _delete_where(self, column: str, value: str) -> int:
        with self._lock:
            try:
                chunk_ids = [
                    row["chunk_id"]
                    for row in self.conn.execute(
                        f"SELECT chunk_id FROM {self.table} WHERE {column} = ?", (value,)
                    )
                ]
                self.conn.executemany(
                    f"DELETE FROM {self.table} WHERE chunk_id = ?",
                    [(chunk_id,) for chunk_id in chunk_ids],
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise VectorStoreError(f"Failed to delete chunks where {column}={value}: {e}") from e

        logger.info(f"Deleted {len(chunk_ids)} chunk(s) where {column}={value}")
        return len(chunk_ids)

    # =========================================================================
    # Reads
    # =========================================================================

    def search(
        self,
        query_embedding: Sequence[float],
        limit: Optional[int] = None,
        subject_id: Optional[str] = None,
    ) -> List[SearchHit]:
        """
        Nearest chunks to a query vector, closest first.

        Args:
            query_embedding: Query vector of ``dimensions`` floats
            limit: Maximum hits; None or <= 0 means unbounded
            subject_id: Exact-match subject filter applied before ranking

        Returns:
            SearchHit list ordered by ascending L2 distance

        Raises:
            DimensionMismatchError: If the query vector has the wrong length
            VectorStoreError: If the query fails
        """
        blob = self._serialize(query_embedding)
        bounded = limit is not None and limit > 0

        if bounded and limit <= MAX_KNN_K:
            sql = (
                f"SELECT chunk_id, subject_id, file_id, text, distance FROM {self.table} "
                f"WHERE embedding MATCH ? AND k = ?"
            )
            params: list = [blob, limit]
            if subject_id is not None:
                sql += " AND subject_id = ?"
                params.append(subject_id)
            sql += " ORDER BY distance"
        else:
            sql = (
                f"SELECT chunk_id, subject_id, file_id, text, "
                f"vec_distance_l2(embedding, ?) AS distance FROM {self.table}"
            )
            params = [blob]
            if subject_id is not None:
                sql += " WHERE subject_id = ?"
                params.append(subject_id)
            sql += " ORDER BY distance"
            if bounded:
                sql += " LIMIT ?"
                params.append(limit)

        with self._lock:
            try:
                rows = self.conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise VectorStoreError(f"Vector search failed: {e}") from e

        return [
            SearchHit(
                chunk_id=row["chunk_id"],
                subject_id=row["subject_id"],
                file_id=row["file_id"],
                text=row["text"],
                distance=float(row["distance"]),
            )
            for row in rows
        ]

    def count(self, subject_id: Optional[str] = None) -> int:
        """Number of stored chunks, optionally for one subject."""
        sql = f"SELECT COUNT(*) FROM {self.table}"
        params: tuple = ()
        if subject_id is not None:
            sql += " WHERE subject_id = ?"
            params = (subject_id,)

        with self._lock:
            try:
                return int(self.conn.execute(sql, params).fetchone()[0])
            except sqlite3.Error as e:
                raise VectorStoreError(f"Failed to count chunks: {e}") from e

    def get_by_file(self, file_id: str) -> List[ChunkRecord]:
        """All chunks of a file, without vectors."""
        return self._select_where("file_id", file_id)

    def get_by_subject(self, subject_id: str) -> List[ChunkRecord]:
        """All chunks of a subject, without vectors."""
        return self._select_where("subject_id", subject_id)

    def _select_where(self, column: str, value: str) -> List[ChunkRecord]:
        with self._lock:
            try:
                rows = self.conn.execute(
                    f"SELECT chunk_id, subject_id, file_id, text FROM {self.table} WHERE {column} = ?",
                    (value,),
                ).fetchall()
            except sqlite3.Error as e:
                raise VectorStoreError(f"Failed to read chunks where {column}={value}: {e}") from e

        return [
            ChunkRecord(
                chunk_id=row["chunk_id"],
                subject_id=row["subject_id"],
                file_id=row["file_id"],
                text=row["text"],
            )
            for row in rows
        ]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _serialize(self, embedding: Sequence[float]) -> bytes:
        if len(embedding) != self.dimensions:
            raise DimensionMismatchError(self.dimensions, len(embedding))
        values = [float(v) for v in embedding]
        if not all(math.isfinite(v) for v in values):
            raise VectorStoreError("Embedding contains non-finite values")
        return sqlite_vec.serialize_float32(values)

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed vector store connection")

    def __enter__(self) -> "VectorStore":
        return self

    def __exit__(self, *args) -> None:
        self.close()
