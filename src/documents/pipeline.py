"""
Ingestion pipeline.

Turns a source document into stored, embedded chunks:

    parse -> store copy -> create file record -> embed chunks -> insert vectors

A file record is never left behind without retrievable content: if no chunk
ends up in the vector store, the record and the stored copy are removed
again. Cleanup is best-effort; its failures are logged and aggregated but
never replace the original error.
"""

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from runtime.core.exceptions import EmbeddingFailedError, RuntimeServiceError
from runtime.core.logging import OperationContext, log_with_context
from runtime.core.types import ServiceResult
from runtime.utils.retry import RetryConfig, retry_with_backoff
from vectorstore import VectorStore, VectorStoreError

from .core.exceptions import EmptyDocumentError, FileRecordError, IngestionError, StoreFailedError
from .core.models import Chunk, flatten_sections
from .parsing import DocumentParser
from .repository import FileRepository
from .storage import FileStorage


logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """
    Configuration for the ingestion pipeline.

    Attributes:
        embed_batch_size: Chunks sent per embedding request
        embedding_model: Model override (client default if None)
        embed_retry: Retry policy for a single embedding batch
        default_search_limit: Hits returned by search() when no limit is given
    """
    embed_batch_size: int = 16
    embedding_model: Optional[str] = None
    embed_retry: RetryConfig = field(default_factory=RetryConfig)
    default_search_limit: int = 5


class IngestionPipeline:
    """
    Coordinates parsing, storage, embedding and vector persistence.

    Example:
        >>> pipeline = IngestionPipeline(parser, storage, repository, store, client)
        >>> result = pipeline.ingest(Path("notes.md"), "math")
        >>> result.success, result.data["chunks"]
    """

    def __init__(
        self,
        parser: DocumentParser,
        storage: FileStorage,
        repository: FileRepository,
        vector_store: VectorStore,
        embedder,
        config: Optional[PipelineConfig] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            parser: Document parser
            storage: Per-subject file storage
            repository: File record repository
            vector_store: Vector store receiving the chunks
            embedder: Runtime client exposing embed(texts, model=)
            config: Pipeline configuration (defaults if None)
        """
        self.parser = parser
        self.storage = storage
        self.repository = repository
        self.vector_store = vector_store
        self.embedder = embedder
        self.config = config or PipelineConfig()

    # =========================================================================
    # Ingestion
    # =========================================================================

    def ingest(self, file_path: Path, subject_id: str) -> ServiceResult:
        """
        Ingest one document into a subject.

        Args:
            file_path: Source document
            subject_id: Subject the document belongs to

        Returns:
            ServiceResult; on success data holds file_id, chunk counts and stored path
        """
        file_path = Path(file_path)
        operation_id = f"ingest-{uuid.uuid4().hex[:12]}"

        with OperationContext(operation_id=operation_id, subject_id=subject_id) as context:
            log_with_context(logger, logging.INFO, f"Ingesting {file_path.name}")

            if not file_path.is_file():
                return self._fail(f"File not found: {file_path}")

            if file_path.stat().st_size == 0:
                return self._fail(str(EmptyDocumentError()))

            try:
                texts = self._parse(file_path)
            except EmptyDocumentError as e:
                return self._fail(str(e))
            except (IngestionError, RuntimeServiceError, OSError, UnicodeError) as e:
                return self._fail(f"Failed to parse {file_path.name}: {e}")

            try:
                stored_path, file_id = self.storage.store_file(file_path, subject_id, file_path.name)
            except (StoreFailedError, ValueError) as e:
                return self._fail(str(e))

            context.update(file_id=file_id)

            try:
                self.repository.create_file(file_id, subject_id, file_path.name, stored_path)
            except FileRecordError as e:
                self._remove_stored_copy(stored_path, [])
                return self._fail(str(e))

            chunks = [
                Chunk(subject_id=subject_id, file_id=file_id, ordinal=i, text=text)
                for i, text in enumerate(texts)
            ]
            embedded = self._embed(chunks)

            if embedded == 0:
                self._compensate(file_id, stored_path)
                return self._fail("Failed to create embeddings")

            inserted = self._insert(chunks)

            if inserted == 0:
                self._compensate(file_id, stored_path)
                return self._fail("Failed to insert embeddings")

            log_with_context(
                logger, logging.INFO,
                f"Ingested {file_path.name}: {inserted}/{len(chunks)} chunk(s) stored",
            )
            return ServiceResult(
                success=True,
                data={
                    "file_id": file_id,
                    "subject_id": subject_id,
                    "stored_path": str(stored_path),
                    "chunks": inserted,
                    "skipped": len(chunks) - inserted,
                },
            )

    def _parse(self, file_path: Path) -> List[str]:
        """
        Parse a file into chunk texts.

        Raises:
            EmptyDocumentError: If the document yields no text
        """
        sections = self.parser.parse(file_path)
        texts = flatten_sections(sections)
        if not texts:
            raise EmptyDocumentError()
        logger.debug(f"Parsed {len(sections)} section(s), {len(texts)} chunk(s)")
        return texts

    def _embed(self, chunks: List[Chunk]) -> int:
        """
        Attach embeddings to chunks in batches.

        A batch that still fails after retries leaves its chunks without an
        embedding.

        Returns:
            Number of chunks that received an embedding
        """
        batch_size = max(1, self.config.embed_batch_size)
        embedded = 0

        for start in range(0, len(chunks), batch_size):
            batch = chunks[start:start + batch_size]
            texts = [chunk.text for chunk in batch]

            outcome = retry_with_backoff(
                lambda: self._embed_batch(texts),
                self.config.embed_retry,
                retry_on=(RuntimeServiceError,),
                operation_name=f"embed chunks {start}-{start + len(batch) - 1}",
            )
            if not outcome.success:
                log_with_context(
                    logger, logging.ERROR,
                    f"Embedding failed for chunks {start}-{start + len(batch) - 1}: {outcome.error}",
                )
                continue

            for chunk, vector in zip(batch, outcome.result):
                chunk.embedding = vector
                embedded += 1

        return embedded

    def _embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        response = self.embedder.embed(list(texts), model=self.config.embedding_model)
        vectors = response.embeddings
        if len(vectors) != len(texts) or not all(vectors):
            raise EmbeddingFailedError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return vectors

    def _insert(self, chunks: List[Chunk]) -> int:
        """
        Insert every embedded chunk.

        Returns:
            Number of chunks persisted
        """
        inserted = 0
        for chunk in chunks:
            if chunk.embedding is None:
                continue
            try:
                self.vector_store.insert(chunk.subject_id, chunk.file_id, chunk.text, chunk.embedding)
                inserted += 1
            except VectorStoreError as e:
                log_with_context(logger, logging.ERROR, f"Failed to insert chunk {chunk.ordinal}: {e}")
        return inserted

    def _compensate(self, file_id: str, stored_path: Path) -> List[str]:
        """
        Best-effort removal of a half-ingested file's vectors, record and copy.

        Returns:
            Cleanup error messages (already logged)
        """
        errors: List[str] = []

        try:
            self.vector_store.delete_by_file(file_id)
        except VectorStoreError as e:
            errors.append(f"vectors: {e}")
        try:
            self.repository.delete_file(file_id)
        except FileRecordError as e:
            errors.append(f"record: {e}")
        self._remove_stored_copy(stored_path, errors)

        for error in errors:
            log_with_context(logger, logging.ERROR, f"Cleanup of {file_id} incomplete: {error}")
        return errors

    def _remove_stored_copy(self, stored_path: Path, errors: List[str]) -> None:
        try:
            self.storage.remove_file(stored_path)
        except OSError as e:
            errors.append(f"file: {e}")
            log_with_context(logger, logging.ERROR, f"Failed to remove stored copy {stored_path}: {e}")

    def _fail(self, error: str) -> ServiceResult:
        log_with_context(logger, logging.WARNING, f"Ingestion failed: {error}")
        return ServiceResult(success=False, error=error)

    # =========================================================================
    # Deletion
    # =========================================================================

    def delete_file(self, file_id: str, subject_id: Optional[str] = None) -> ServiceResult:
        """
        Delete a file's vectors, its record and its stored copy.

        Every step runs even if an earlier one fails; errors are joined.

        Args:
            file_id: File to delete
            subject_id: Subject used to locate the copy when no record exists
        """
        with OperationContext(operation_id=f"delete-{uuid.uuid4().hex[:12]}", file_id=file_id):
            errors: List[str] = []

            record = None
            try:
                record = self.repository.get_file(file_id)
            except FileRecordError as e:
                errors.append(str(e))

            stored_path = None
            if record is not None:
                stored_path = record.stored_path
            elif subject_id is not None:
                try:
                    stored_path = self.storage.file_path(subject_id, file_id)
                except ValueError as e:
                    errors.append(str(e))

            try:
                removed_chunks = self.vector_store.delete_by_file(file_id)
            except VectorStoreError as e:
                errors.append(str(e))
                removed_chunks = 0

            try:
                self.repository.delete_file(file_id)
            except FileRecordError as e:
                errors.append(str(e))

            if stored_path is not None:
                try:
                    self.storage.remove_file(stored_path)
                except OSError as e:
                    errors.append(f"Failed to remove {stored_path}: {e}")

            if errors:
                message = ", ".join(errors)
                log_with_context(logger, logging.ERROR, f"Delete of {file_id} incomplete: {message}")
                return ServiceResult(success=False, error=message)

            log_with_context(logger, logging.INFO, f"Deleted file {file_id} ({removed_chunks} chunk(s))")
            return ServiceResult(success=True, data={"file_id": file_id, "chunks": removed_chunks})

    def delete_subject(self, subject_id: str) -> ServiceResult:
        """
        Cascade a subject deletion through all of its files, then remove
        any remaining vectors, records and the subject directory.
        """
        with OperationContext(operation_id=f"delete-subject-{uuid.uuid4().hex[:12]}", subject_id=subject_id):
            errors: List[str] = []
            deleted_files = 0

            try:
                records = self.repository.list_files(subject_id)
            except FileRecordError as e:
                errors.append(str(e))
                records = []

            for record in records:
                result = self.delete_file(record.file_id, subject_id=subject_id)
                if result.success:
                    deleted_files += 1
                else:
                    errors.append(result.error)

            try:
                self.vector_store.delete_by_subject(subject_id)
            except VectorStoreError as e:
                errors.append(str(e))

            try:
                self.repository.delete_files_by_subject(subject_id)
            except FileRecordError as e:
                errors.append(str(e))

            try:
                self.storage.remove_subject_dir(subject_id)
            except (OSError, ValueError) as e:
                errors.append(f"Failed to remove subject directory: {e}")

            if errors:
                message = ", ".join(errors)
                log_with_context(logger, logging.ERROR, f"Delete of subject {subject_id} incomplete: {message}")
                return ServiceResult(success=False, error=message)

            log_with_context(logger, logging.INFO, f"Deleted subject {subject_id} ({deleted_files} file(s))")
            return ServiceResult(success=True, data={"subject_id": subject_id, "files": deleted_files})

    # =========================================================================
    # Retrieval
    # =========================================================================

    def search(
        self,
        query_text: str,
        subject_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ServiceResult:
        """
        Embed a query and return the nearest chunks.

        Args:
            query_text: Natural language query
            subject_id: Restrict hits to one subject
            limit: Maximum hits (config default if None, unbounded if <= 0)

        Returns:
            ServiceResult whose data is a list of hit dicts, nearest first
        """
        if not query_text or not query_text.strip():
            return ServiceResult(success=False, error="Query is empty")

        limit = self.config.default_search_limit if limit is None else limit

        try:
            vectors = self._embed_batch([query_text.strip()])
            hits = self.vector_store.search(vectors[0], limit=limit, subject_id=subject_id)
        except (RuntimeServiceError, VectorStoreError) as e:
            logger.error(f"Search failed: {e}")
            return ServiceResult(success=False, error=str(e))

        return ServiceResult(success=True, data=[hit.to_dict() for hit in hits])
