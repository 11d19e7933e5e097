"""
Data models for document ingestion.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class Section:
    """
    Intermediate parse result: a heading and its ordered text chunks.
    
    Not persisted; consumed immediately by the embedding step.
    """
    heading: str = ""
    content: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(chunk.strip() for chunk in self.content)


@dataclass
class Chunk:
    """
    One embeddable unit of a document.
    
    Attributes:
        subject_id: Owning subject
        file_id: Owning file
        ordinal: Position of the chunk within the document
        text: Chunk text
        embedding: Vector, attached only after a successful embedding call
    """
    subject_id: str
    file_id: str
    ordinal: int
    text: str
    embedding: Optional[List[float]] = None


@dataclass
class FileRecord:
    """
    Database record of an uploaded file.
    
    Attributes:
        file_id: Stored filename, unique across subjects
        subject_id: Owning subject
        original_filename: Name of the file as uploaded
        stored_path: Absolute path of the stored copy
        created_at: When the record was created
    """
    file_id: str
    subject_id: str
    original_filename: str
    stored_path: Path
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_id": self.file_id,
            "subject_id": self.subject_id,
            "original_filename": self.original_filename,
            "stored_path": str(self.stored_path),
            "created_at": self.created_at.isoformat(),
        }


def flatten_sections(sections: List[Section]) -> List[str]:
    """All non-blank chunk strings across sections, in document order."""
    return [
        chunk
        for section in sections
        for chunk in section.content
        if chunk and chunk.strip()
    ]
