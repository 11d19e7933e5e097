"""
Custom exceptions for the vector store.
"""


class VectorStoreError(Exception):
    """Base exception for vector store failures (I/O, SQL, extension loading)."""
    pass


class DimensionMismatchError(VectorStoreError):
    """An embedding does not match the store's fixed dimensionality."""
    
    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual
