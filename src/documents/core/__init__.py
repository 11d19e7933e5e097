"""
Core models and exceptions for document ingestion.
"""

from .exceptions import (
    DocumentParseError,
    EmptyDocumentError,
    FileRecordError,
    IngestionError,
    StoreFailedError,
    UnsupportedDocumentError,
)
from .models import Chunk, FileRecord, Section, flatten_sections

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
    "flatten_sections",
]
