"""
Document ingestion.

Turns source documents into stored, embedded chunks and keeps the file store,
the file records and the vector store consistent across failures.

Key components:
- core/: Models and exceptions
- parsing/: Format-specific parsers, cleaning and chunking
- storage.py: Per-subject copies of uploaded files
- repository.py: File records
- pipeline.py: Parse -> store -> record -> embed -> insert, plus deletion
"""

from .core.exceptions import (
    DocumentParseError,
    EmptyDocumentError,
    FileRecordError,
    IngestionError,
    StoreFailedError,
    UnsupportedDocumentError,
)
from .core.models import Chunk, FileRecord, Section
from .parsing import DocumentParser, VisionTranscriber
from .pipeline import IngestionPipeline, PipelineConfig
from .repository import FileRepository, SqliteFileRepository
from .storage import FileStorage

__version__ = "0.1.0"

__all__ = [
    "DocumentParseError",
    "EmptyDocumentError",
    "FileRecordError",
    "IngestionError",
    "StoreFailedError",
    "UnsupportedDocumentError",
    "Chunk",
    "FileRecord",
    "Section",
    "DocumentParser",
    "VisionTranscriber",
    "IngestionPipeline",
    "PipelineConfig",
    "FileRepository",
    "SqliteFileRepository",
    "FileStorage",
]
