"""
Unit tests for the ingestion pipeline.

Uses real storage and an in-memory file repository, with a fake vector store
and a deterministic embedder standing in for sqlite-vec and the runtime.
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakeEmbedder
from documents import (
    DocumentParser,
    FileRecordError,
    FileStorage,
    IngestionPipeline,
    PipelineConfig,
    SqliteFileRepository,
)
from runtime.utils.retry import RetryConfig
from vectorstore import SearchHit, VectorStoreError


class FakeVectorStore:
    """In-memory stand-in for VectorStore."""

    def __init__(self, fail_inserts=False, fail_deletes=False):
        self.rows = []
        self.fail_inserts = fail_inserts
        self.fail_deletes = fail_deletes
        self.searches = []

    def insert(self, subject_id, file_id, text, embedding):
        if self.fail_inserts:
            raise VectorStoreError("database is locked")
        chunk_id = f"chunk-{len(self.rows)}"
        self.rows.append((chunk_id, subject_id, file_id, text, list(embedding)))
        return chunk_id

    def delete_by_file(self, file_id):
        if self.fail_deletes:
            raise VectorStoreError("delete failed")
        before = len(self.rows)
        self.rows = [row for row in self.rows if row[2] != file_id]
        return before - len(self.rows)

    def delete_by_subject(self, subject_id):
        before = len(self.rows)
        self.rows = [row for row in self.rows if row[1] != subject_id]
        return before - len(self.rows)

    def search(self, query_embedding, limit=None, subject_id=None):
        self.searches.append((list(query_embedding), limit, subject_id))
        rows = [row for row in self.rows if subject_id is None or row[1] == subject_id]
        hits = [
            SearchHit(
                chunk_id=row[0],
                subject_id=row[1],
                file_id=row[2],
                text=row[3],
                distance=sum((a - b) ** 2 for a, b in zip(row[4], query_embedding)) ** 0.5,
            )
            for row in rows
        ]
        hits.sort(key=lambda hit: hit.distance)
        return hits[:limit] if limit and limit > 0 else hits


FAST_RETRY = RetryConfig(max_attempts=2, initial_delay_ms=0, max_delay_ms=0, jitter=False)


@pytest.fixture
def storage(tmp_path):
    return FileStorage(tmp_path / "files", reserved=["ollama", "database"])


@pytest.fixture
def repository():
    repo = SqliteFileRepository(":memory:")
    yield repo
    repo.close()


@pytest.fixture
def vector_store():
    return FakeVectorStore()


def make_pipeline(storage, repository, vector_store, embedder=None, **config):
    config.setdefault("embed_retry", FAST_RETRY)
    return IngestionPipeline(
        parser=DocumentParser(),
        storage=storage,
        repository=repository,
        vector_store=vector_store,
        embedder=embedder or FakeEmbedder(),
        config=PipelineConfig(**config),
    )


class TestIngest:
    def test_success(self, storage, repository, vector_store, sample_markdown):
        pipeline = make_pipeline(storage, repository, vector_store)

        result = pipeline.ingest(sample_markdown, "math")

        assert result.success is True
        file_id = result.data["file_id"]
        assert result.data["chunks"] == 3
        assert result.data["skipped"] == 0
        assert Path(result.data["stored_path"]).read_bytes() == sample_markdown.read_bytes()
        assert repository.get_file(file_id).original_filename == "notes.md"
        assert [row[3] for row in vector_store.rows] == [
            "The Pythagorean theorem relates the sides of a right triangle.",
            "It was known long before Pythagoras.",
            "Variables stand for unknown values.",
        ]
        assert {row[1:3] for row in vector_store.rows} == {("math", file_id)}

    def test_batches_embedding_requests(self, storage, repository, vector_store, sample_markdown):
        embedder = FakeEmbedder()
        pipeline = make_pipeline(storage, repository, vector_store, embedder, embed_batch_size=2)

        pipeline.ingest(sample_markdown, "math")

        assert [len(call) for call in embedder.calls] == [2, 1]

    def test_missing_file(self, storage, repository, vector_store, tmp_path):
        result = make_pipeline(storage, repository, vector_store).ingest(tmp_path / "gone.md", "math")

        assert result.success is False
        assert result.error.startswith("File not found")

    def test_empty_file_has_no_side_effects(self, storage, repository, vector_store, tmp_path):
        empty = tmp_path / "empty.md"
        empty.write_bytes(b"")
        embedder = FakeEmbedder()

        result = make_pipeline(storage, repository, vector_store, embedder).ingest(empty, "math")

        assert result.success is False
        assert result.error == "File is empty"
        assert embedder.calls == []
        assert repository.list_files("math") == []
        assert storage.list_subject_files("math") == []
        assert vector_store.rows == []

    @pytest.mark.parametrize("name", ["empty.docx", "empty.pdf", "empty.odt"])
    def test_empty_binary_document(self, storage, repository, vector_store, tmp_path, name):
        empty = tmp_path / name
        empty.write_bytes(b"")
        embedder = FakeEmbedder()

        result = make_pipeline(storage, repository, vector_store, embedder).ingest(empty, "math")

        assert result.success is False
        assert result.error == "File is empty"
        assert embedder.calls == []
        assert repository.list_files("math") == []
        assert storage.list_subject_files("math") == []

    def test_damaged_pdf_page(self, storage, repository, vector_store, tmp_path):
        damaged = tmp_path / "damaged.pdf"
        damaged.write_bytes(b"%PDF-1.7")
        page = MagicMock()
        page.get_text.side_effect = RuntimeError("cannot find object in xref")
        document = MagicMock()
        document.__enter__.return_value = document
        document.__exit__.return_value = False
        document.__iter__.return_value = iter([page])
        fitz = MagicMock()
        fitz.open.return_value = document

        with patch("documents.parsing.pdf.fitz", fitz):
            result = make_pipeline(storage, repository, vector_store).ingest(damaged, "math")

        assert result.success is False
        assert result.error.startswith("Failed to parse damaged.pdf")
        assert storage.list_subject_files("math") == []

    def test_parse_failure(self, storage, repository, vector_store, tmp_path):
        broken = tmp_path / "broken.odt"
        broken.write_bytes(b"not a zip")

        result = make_pipeline(storage, repository, vector_store).ingest(broken, "math")

        assert result.success is False
        assert result.error.startswith("Failed to parse broken.odt")
        assert storage.list_subject_files("math") == []

    def test_reserved_subject(self, storage, repository, vector_store, sample_markdown):
        result = make_pipeline(storage, repository, vector_store).ingest(sample_markdown, "database")

        assert result.success is False
        assert "reserved" in result.error
        assert repository.list_files("database") == []

    def test_record_failure_removes_copy(self, storage, vector_store, sample_markdown):
        repository = MagicMock()
        repository.create_file.side_effect = FileRecordError("UNIQUE constraint failed")

        result = make_pipeline(storage, repository, vector_store).ingest(sample_markdown, "math")

        assert result.success is False
        assert "UNIQUE" in result.error
        assert storage.list_subject_files("math") == []
        assert vector_store.rows == []

    def test_transient_embedding_failure_is_retried(self, storage, repository, vector_store, sample_markdown):
        embedder = FakeEmbedder(fail_times=1)

        result = make_pipeline(storage, repository, vector_store, embedder).ingest(sample_markdown, "math")

        assert result.success is True
        assert len(embedder.calls) == 2

    def test_all_embeddings_failed_compensates(self, storage, repository, vector_store, sample_markdown):
        embedder = FakeEmbedder(always_fail=True)

        result = make_pipeline(storage, repository, vector_store, embedder).ingest(sample_markdown, "math")

        assert result.success is False
        assert result.error == "Failed to create embeddings"
        assert repository.list_files("math") == []
        assert storage.list_subject_files("math") == []
        assert vector_store.rows == []

    def test_partial_embedding_keeps_successful_batches(self, storage, repository, vector_store, sample_markdown):
        class SecondBatchFails(FakeEmbedder):
            def embed(self, texts, model=None):
                if texts and texts[0].startswith("Variables"):
                    self.always_fail = True
                else:
                    self.always_fail = False
                return super().embed(texts, model=model)

        pipeline = make_pipeline(
            storage, repository, vector_store, SecondBatchFails(), embed_batch_size=2
        )

        result = pipeline.ingest(sample_markdown, "math")

        assert result.success is True
        assert result.data["chunks"] == 2
        assert result.data["skipped"] == 1

    def test_all_inserts_failed_compensates(self, storage, repository, sample_markdown):
        vector_store = FakeVectorStore(fail_inserts=True)

        result = make_pipeline(storage, repository, vector_store).ingest(sample_markdown, "math")

        assert result.success is False
        assert result.error == "Failed to insert embeddings"
        assert repository.list_files("math") == []
        assert storage.list_subject_files("math") == []

    def test_compensation_errors_do_not_replace_cause(self, storage, repository, sample_markdown):
        vector_store = FakeVectorStore(fail_inserts=True, fail_deletes=True)

        result = make_pipeline(storage, repository, vector_store).ingest(sample_markdown, "math")

        assert result.error == "Failed to insert embeddings"
        assert repository.list_files("math") == []


class TestDelete:
    def test_delete_file(self, storage, repository, vector_store, sample_markdown):
        pipeline = make_pipeline(storage, repository, vector_store)
        ingested = pipeline.ingest(sample_markdown, "math")
        file_id = ingested.data["file_id"]

        result = pipeline.delete_file(file_id)

        assert result.success is True
        assert result.data == {"file_id": file_id, "chunks": 3}
        assert vector_store.rows == []
        assert repository.get_file(file_id) is None
        assert not Path(ingested.data["stored_path"]).exists()

    def test_delete_unknown_file(self, storage, repository, vector_store):
        result = make_pipeline(storage, repository, vector_store).delete_file("ghost.md", subject_id="math")

        assert result.success is True
        assert result.data["chunks"] == 0

    def test_delete_file_continues_after_vector_failure(self, storage, repository, sample_markdown):
        vector_store = FakeVectorStore()
        pipeline = make_pipeline(storage, repository, vector_store)
        ingested = pipeline.ingest(sample_markdown, "math")
        vector_store.fail_deletes = True

        result = pipeline.delete_file(ingested.data["file_id"])

        assert result.success is False
        assert "delete failed" in result.error
        assert repository.get_file(ingested.data["file_id"]) is None
        assert not Path(ingested.data["stored_path"]).exists()

    def test_delete_subject(self, storage, repository, vector_store, sample_markdown, tmp_path):
        other = tmp_path / "other.txt"
        other.write_text("Numbers are fun.", encoding="utf-8")
        pipeline = make_pipeline(storage, repository, vector_store)
        pipeline.ingest(sample_markdown, "math")
        pipeline.ingest(other, "math")
        kept = pipeline.ingest(other, "history")

        result = pipeline.delete_subject("math")

        assert result.success is True
        assert result.data == {"subject_id": "math", "files": 2}
        assert repository.list_files("math") == []
        assert not (storage.root / "math").exists()
        assert {row[1] for row in vector_store.rows} == {"history"}
        assert repository.get_file(kept.data["file_id"]) is not None

    def test_delete_file_with_unreadable_records(self, storage, repository, vector_store):
        repository.conn.execute("DROP TABLE files")

        result = make_pipeline(storage, repository, vector_store).delete_file("x.md", subject_id="math")

        assert result.success is False
        assert "no such table" in result.error

    def test_delete_subject_with_unreadable_records(self, storage, repository, vector_store):
        repository.conn.execute("DROP TABLE files")

        result = make_pipeline(storage, repository, vector_store).delete_subject("math")

        assert result.success is False
        assert "Failed to list file records of math" in result.error

    def test_delete_empty_subject(self, storage, repository, vector_store):
        result = make_pipeline(storage, repository, vector_store).delete_subject("nothing")

        assert result.success is True
        assert result.data["files"] == 0


class TestSearch:
    def test_nearest_first(self, storage, repository, vector_store, sample_markdown):
        pipeline = make_pipeline(storage, repository, vector_store)
        pipeline.ingest(sample_markdown, "math")

        result = pipeline.search("Variables stand for unknown values.", subject_id="math", limit=2)

        assert result.success is True
        assert len(result.data) == 2
        assert result.data[0]["text"] == "Variables stand for unknown values."
        assert result.data[0]["distance"] == 0
        assert vector_store.searches[0][1:] == (2, "math")

    def test_default_limit(self, storage, repository, vector_store):
        pipeline = make_pipeline(storage, repository, vector_store, default_search_limit=7)

        pipeline.search("anything")

        assert vector_store.searches[0][1] == 7

    def test_empty_query(self, storage, repository, vector_store):
        result = make_pipeline(storage, repository, vector_store).search("   ")

        assert result.success is False
        assert result.error == "Query is empty"

    def test_embedding_failure(self, storage, repository, vector_store):
        pipeline = make_pipeline(storage, repository, vector_store, FakeEmbedder(always_fail=True))

        result = pipeline.search("query")

        assert result.success is False
        assert "500" in result.error
