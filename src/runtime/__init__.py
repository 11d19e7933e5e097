"""
Local inference runtime supervision.

Gets the runtime onto the machine, installs and supervises it as a child
process, pulls the models it needs, and exposes a client for embeddings and
generation.

Key components:
- core/: Types, exceptions, logging and the progress channel
- platforms/: Per-OS download/install/launch strategies
- providers/: Runtime HTTP API client
- installer.py: Artifact to executable conversion
- process.py: Child process wrapper with output draining
- supervisor.py: Download -> install -> start -> pull state machine
- utils/: Retry helpers
"""

from .core.exceptions import (
    EmbeddingFailedError,
    ExecutableNotFoundError,
    InstallError,
    ModelPullError,
    RuntimeDownloadError,
    RuntimeProviderError,
    RuntimeServiceError,
    RuntimeUnresponsiveError,
    UnsupportedPlatformError,
)
from .core.progress import Done, InProgress, ProgressChannel
from .core.types import (
    ProgressEvent,
    ProgressPhase,
    RuntimeConfig,
    RuntimePhase,
    RuntimeState,
    ServiceResult,
)
from .installer import RuntimeInstaller
from .providers.ollama_client import OllamaClient
from .supervisor import RuntimeSupervisor

__version__ = "0.1.0"

__all__ = [
    "EmbeddingFailedError",
    "ExecutableNotFoundError",
    "InstallError",
    "ModelPullError",
    "RuntimeDownloadError",
    "RuntimeProviderError",
    "RuntimeServiceError",
    "RuntimeUnresponsiveError",
    "UnsupportedPlatformError",
    "Done",
    "InProgress",
    "ProgressChannel",
    "ProgressEvent",
    "ProgressPhase",
    "RuntimeConfig",
    "RuntimePhase",
    "RuntimeState",
    "ServiceResult",
    "RuntimeInstaller",
    "OllamaClient",
    "RuntimeSupervisor",
]
