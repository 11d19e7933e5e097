"""
Vector store contracts.
"""

from .models import ChunkRecord, SearchHit

__all__ = ["ChunkRecord", "SearchHit"]
