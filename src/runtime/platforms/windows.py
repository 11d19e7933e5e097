"""
Windows runtime handling.

Releases ship as a .zip archive; a bare .exe placed in the runtime directory
is used as-is.
"""

import logging
import os
import subprocess
import zipfile
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..core.exceptions import InstallError
from ..core.types import RuntimeConfig
from .base import RELEASE_BASE_URL, PlatformStrategy


logger = logging.getLogger(__name__)

# subprocess.CREATE_NO_WINDOW only exists on Windows builds of Python
CREATE_NO_WINDOW = 0x08000000


class WindowsPlatform(PlatformStrategy):
    """Windows strategy: zip extraction, hidden console, PATH prepend."""
    
    name = "windows"
    executable_candidates = ("ollama.exe", "bin/ollama.exe")
    
    def download_url(self, version: str) -> str:
        return f"{RELEASE_BASE_URL}/{version}/ollama-windows-amd64.zip"
    
    def find_artifact(self, directory: Path) -> Optional[Path]:
        directory = Path(directory)
        if not directory.is_dir():
            return None
        return self._newest([p for p in directory.iterdir() if p.suffix.lower() == ".zip"])
    
    def find_executable(self, directory: Path) -> Optional[Path]:
        found = super().find_executable(directory)
        if found is not None:
            return found
        directory = Path(directory)
        if not directory.is_dir():
            return None
        # Any stray .exe at the top level, e.g. a renamed download
        exes = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ".exe")
        return exes[0] if exes else None
    
    def extract(self, artifact: Path, directory: Path) -> None:
        logger.info(f"Extracting {artifact.name} into {directory}")
        try:
            with zipfile.ZipFile(artifact) as archive:
                archive.extractall(directory)
        except zipfile.BadZipFile as e:
            raise InstallError(f"Corrupt runtime archive {artifact.name}: {e}") from e
    
    def requires_exec_bit(self) -> bool:
        return False
    
    def spawn_env(
        self,
        base_env: Mapping[str, str],
        executable: Path,
        config: RuntimeConfig,
    ) -> Dict[str, str]:
        env = super().spawn_env(base_env, executable, config)
        # Bundled DLLs live next to the executable
        env["PATH"] = f"{Path(executable).parent}{os.pathsep}{base_env.get('PATH', '')}"
        return env
    
    def popen_kwargs(self, executable: Path) -> Dict[str, Any]:
        return {
            "cwd": str(Path(executable).parent),
            "creationflags": getattr(subprocess, "CREATE_NO_WINDOW", CREATE_NO_WINDOW),
        }
