"""
Custom exceptions for document ingestion.
"""


class IngestionError(Exception):
    """Base exception for all ingestion errors."""
    pass


class EmptyDocumentError(IngestionError):
    """Parsing produced no embeddable text."""
    
    def __init__(self, message: str = "File is empty"):
        super().__init__(message)


class UnsupportedDocumentError(IngestionError):
    """No parser can handle the file (e.g. an image without a vision model)."""
    pass


class DocumentParseError(IngestionError):
    """A parser failed on a malformed or unreadable file."""
    pass


class StoreFailedError(IngestionError):
    """Copying the source file into subject storage failed."""
    pass


class FileRecordError(IngestionError):
    """The file repository rejected a create/delete."""
    pass
