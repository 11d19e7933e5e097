"""
Core types for the local runtime module.
"""

import platform as _platform
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urlparse


DEFAULT_BASE_URL = "http://127.0.0.1:11434"
DEFAULT_RUNTIME_VERSION = "v0.9.5"
DEFAULT_GENERATION_MODEL = "gemma3n:e4b"
DEFAULT_EMBEDDING_MODEL = "nomic-embed-text:v1.5"


class RuntimePhase(str, Enum):
    """Supervisor state machine states."""
    NOT_DOWNLOADED = "not_downloaded"
    DOWNLOADED = "downloaded"
    INSTALLED = "installed"
    STARTED = "started"
    READY = "ready"
    FAILED = "failed"


class ProgressPhase(str, Enum):
    """Stage of the readiness chain a progress event belongs to."""
    DOWNLOAD = "download"
    INSTALL = "install"
    START = "start"
    PULL = "pull"
    READY = "ready"


@dataclass
class RuntimeConfig:
    """
    Configuration for the runtime supervisor and its API client.
    
    Attributes:
        runtime_dir: Directory holding downloaded and installed runtime artifacts
        base_url: Loopback URL the runtime binds to
        version: Runtime release used to build download URLs
        download_url: Explicit artifact URL, overrides the platform default
        models_dir: Directory the runtime stores models in (defaults to runtime_dir)
        required_models: Models pulled during ensure_ready
        generation_model: Default model for generate()
        embedding_model: Default model for embed()
        vision_model: Model used for image transcription
        health_attempts: Health probes after spawning before giving up
        health_delay_seconds: Fixed delay between health probes
        probe_timeout_seconds: Timeout for a single health probe
        timeout_seconds: Timeout for generate/embed/list requests
        pull_timeout_seconds: Socket timeout while streaming a model pull
        fail_on_model_error: Treat model pull failures as a failed ensure_ready
    """
    runtime_dir: Path
    base_url: str = DEFAULT_BASE_URL
    version: str = DEFAULT_RUNTIME_VERSION
    download_url: Optional[str] = None
    models_dir: Optional[Path] = None
    required_models: List[str] = field(
        default_factory=lambda: [DEFAULT_GENERATION_MODEL, DEFAULT_EMBEDDING_MODEL]
    )
    generation_model: str = DEFAULT_GENERATION_MODEL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    vision_model: str = DEFAULT_GENERATION_MODEL
    health_attempts: int = 5
    health_delay_seconds: float = 1.0
    probe_timeout_seconds: float = 5.0
    timeout_seconds: float = 120.0
    pull_timeout_seconds: float = 600.0
    fail_on_model_error: bool = False

    def __post_init__(self):
        self.runtime_dir = Path(self.runtime_dir)
        if self.models_dir is not None:
            self.models_dir = Path(self.models_dir)

    @property
    def host(self) -> str:
        """host:port form of base_url, as the runtime expects in OLLAMA_HOST."""
        parsed = urlparse(self.base_url)
        return parsed.netloc or self.base_url

    @property
    def effective_models_dir(self) -> Path:
        return self.models_dir or self.runtime_dir


@dataclass
class RuntimeState:
    """
    Process-wide runtime state. Mutated only by the supervisor that owns it.
    
    Attributes:
        phase: Last state reached by the state machine
        executable: Installed executable path, once known
        process: Owned child process handle (None when not spawned by us)
        external: True when a runtime was already answering before we spawned one
        models_pulled: Required models confirmed present
        last_error: Error from the last failed ensure_ready
    """
    phase: RuntimePhase = RuntimePhase.NOT_DOWNLOADED
    executable: Optional[Path] = None
    process: Optional[Any] = None
    external: bool = False
    models_pulled: Set[str] = field(default_factory=set)
    last_error: Optional[str] = None

    @property
    def installed(self) -> bool:
        return self.executable is not None

    @property
    def running(self) -> bool:
        if self.external:
            return True
        return self.process is not None and self.process.is_alive()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "installed": self.installed,
            "running": self.running,
            "external": self.external,
            "executable": str(self.executable) if self.executable else None,
            "pid": getattr(self.process, "pid", None),
            "models_pulled": sorted(self.models_pulled),
            "last_error": self.last_error,
        }


@dataclass(frozen=True)
class ProgressEvent:
    """
    Progress payload streamed by long-running runtime operations.
    
    Exactly one event with completed=True ends a given operation.
    """
    phase: ProgressPhase
    status: str
    filename: Optional[str] = None
    model: Optional[str] = None
    downloaded_bytes: Optional[int] = None
    total_bytes: Optional[int] = None
    percentage: Optional[int] = None
    completed: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "phase": self.phase.value,
            "status": self.status,
            "completed": self.completed,
        }
        for key in ("filename", "model", "downloaded_bytes", "total_bytes", "percentage", "error"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class ServiceResult:
    """
    Uniform {success, data, error} shape returned across component boundaries.
    """
    success: bool
    data: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"success": self.success}
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error
        return result


def machine_arch() -> str:
    """Normalized CPU architecture name (amd64, arm64, or the raw machine string)."""
    machine = _platform.machine().lower()
    if machine in ("x86_64", "amd64", "x64"):
        return "amd64"
    if machine in ("aarch64", "arm64", "armv8l"):
        return "arm64"
    return machine
