"""
Custom exceptions for the local runtime module.
"""


class RuntimeServiceError(Exception):
    """Base exception for all runtime supervision errors."""
    pass


class UnsupportedPlatformError(RuntimeServiceError):
    """The current OS/architecture has no runtime build."""
    pass


class RuntimeDownloadError(RuntimeServiceError):
    """The runtime artifact could not be downloaded."""
    pass


class ExecutableNotFoundError(RuntimeServiceError):
    """
    Neither a runnable executable nor an installable artifact was found.
    """
    pass


class InstallError(RuntimeServiceError):
    """
    Converting a downloaded artifact into an executable failed.
    
    Raised when:
    - A disk image cannot be mounted
    - The expected bundle is missing inside an archive or image
    - Extraction or permission fixup fails
    """
    pass


class RuntimeUnresponsiveError(RuntimeServiceError):
    """The spawned runtime never answered its health probe."""
    pass


class RuntimeProviderError(RuntimeServiceError):
    """
    Error communicating with the runtime HTTP API.
    
    Raised when:
    - The runtime is unreachable
    - The runtime returns an error response
    - The response body is not valid JSON
    """
    
    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ModelPullError(RuntimeServiceError):
    """
    Pulling a model failed.
    """
    
    def __init__(self, message: str, model: str = None):
        super().__init__(message)
        self.model = model


class EmbeddingFailedError(RuntimeServiceError):
    """The runtime returned no usable embeddings for a request."""
    pass
