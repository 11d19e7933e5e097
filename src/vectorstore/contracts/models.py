"""
Data models for vector store rows and search results.
"""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class ChunkRecord:
    """
    A stored chunk without its vector.
    
    Attributes:
        chunk_id: Unique id generated at insert time
        subject_id: Owning subject
        file_id: Owning file
        text: Chunk text
    """
    chunk_id: str
    subject_id: str
    file_id: str
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk_id": self.chunk_id,
            "subject_id": self.subject_id,
            "file_id": self.file_id,
            "text": self.text,
        }


@dataclass(frozen=True)
class SearchHit:
    """
    A search result: a stored chunk and its L2 distance to the query.
    """
    chunk_id: str
    subject_id: str
    file_id: str
    text: str
    distance: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk_id": self.chunk_id,
            "subject_id": self.subject_id,
            "file_id": self.file_id,
            "text": self.text,
            "distance": self.distance,
        }
