"""
Platform strategy interface.

One implementation per operating system decides where the runtime artifact
comes from, how it becomes an executable, and how the child process is
launched. The strategy is selected once at startup by select_platform().
"""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..core.types import RuntimeConfig


logger = logging.getLogger(__name__)

RELEASE_BASE_URL = "https://github.com/ollama/ollama/releases/download"


class PlatformStrategy(ABC):
    """
    Abstract base class for platform-specific runtime handling.
    
    Subclasses must implement:
    - download_url: artifact URL for a runtime version
    - find_artifact: locate a downloaded, not yet installed artifact
    - extract: turn the artifact into an executable inside the runtime dir
    """
    
    name: str = "base"
    
    # Relative paths checked in order for an installed executable
    executable_candidates: Sequence[str] = ("ollama",)
    
    @abstractmethod
    def download_url(self, version: str) -> str:
        """Return the release artifact URL for this platform."""
        pass
    
    @abstractmethod
    def find_artifact(self, directory: Path) -> Optional[Path]:
        """
        Locate a downloaded artifact in directory.
        
        Returns:
            Path to the artifact, or None if nothing was downloaded
        """
        pass
    
    @abstractmethod
    def extract(self, artifact: Path, directory: Path) -> None:
        """
        Convert the artifact into an executable under directory.
        
        Raises:
            InstallError: If the artifact cannot be unpacked
        """
        pass
    
    def find_executable(self, directory: Path) -> Optional[Path]:
        """Return the first existing executable candidate, or None."""
        for relative in self.executable_candidates:
            candidate = Path(directory) / relative
            if candidate.is_file():
                return candidate
        return None
    
    def requires_exec_bit(self) -> bool:
        """Whether the executable needs the POSIX executable bit."""
        return True
    
    def spawn_env(
        self,
        base_env: Mapping[str, str],
        executable: Path,
        config: RuntimeConfig,
    ) -> Dict[str, str]:
        """
        Build the child process environment.
        
        The runtime binds to the configured loopback address and stores its
        models under the configured models directory.
        """
        env = dict(base_env)
        env["OLLAMA_HOST"] = config.host
        env["OLLAMA_MODELS"] = str(config.effective_models_dir)
        return env
    
    def popen_kwargs(self, executable: Path) -> Dict[str, Any]:
        """Extra keyword arguments for subprocess.Popen."""
        return {}
    
    def serve_command(self, executable: Path) -> List[str]:
        return [str(executable), "serve"]
    
    def _newest(self, paths: List[Path]) -> Optional[Path]:
        files = [p for p in paths if p.is_file()]
        if not files:
            return None
        return max(files, key=lambda p: os.stat(p).st_mtime)
