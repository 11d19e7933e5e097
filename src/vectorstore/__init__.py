"""
Vector store for embedded document chunks.

Backed by SQLite with the sqlite-vec extension: one vec0 virtual table keyed
by chunk id, carrying subject/file metadata and a fixed-length float vector.
"""

from .contracts.models import ChunkRecord, SearchHit
from .exceptions import DimensionMismatchError, VectorStoreError
from .store import VectorStore

__version__ = "0.1.0"

__all__ = [
    "ChunkRecord",
    "SearchHit",
    "DimensionMismatchError",
    "VectorStoreError",
    "VectorStore",
]
