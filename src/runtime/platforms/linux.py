"""
Linux runtime handling.

Releases ship either as a bare binary (ollama-linux-<arch>) or as a .tgz
archive containing bin/ollama.
"""

import logging
import shutil
import tarfile
from pathlib import Path
from typing import Optional

from ..core.exceptions import InstallError, UnsupportedPlatformError
from ..core.types import machine_arch
from .base import RELEASE_BASE_URL, PlatformStrategy


logger = logging.getLogger(__name__)

ARTIFACT_PREFIX = "ollama-linux-"
SUPPORTED_ARCHES = ("amd64", "arm64")


class LinuxPlatform(PlatformStrategy):
    """Linux strategy: raw binary rename or tarball extraction."""
    
    name = "linux"
    executable_candidates = ("ollama", "bin/ollama")
    
    def __init__(self, arch: Optional[str] = None):
        self.arch = arch or machine_arch()
    
    def download_url(self, version: str) -> str:
        if self.arch not in SUPPORTED_ARCHES:
            raise UnsupportedPlatformError(f"No Linux runtime build for architecture '{self.arch}'")
        return f"{RELEASE_BASE_URL}/{version}/{ARTIFACT_PREFIX}{self.arch}"
    
    def find_artifact(self, directory: Path) -> Optional[Path]:
        directory = Path(directory)
        if not directory.is_dir():
            return None
        return self._newest([p for p in directory.iterdir() if p.name.startswith(ARTIFACT_PREFIX)])
    
    def extract(self, artifact: Path, directory: Path) -> None:
        if _is_tarball(artifact):
            logger.info(f"Extracting {artifact.name} into {directory}")
            with tarfile.open(artifact, "r:*") as archive:
                if hasattr(tarfile, "data_filter"):
                    archive.extractall(directory, filter="data")
                else:
                    archive.extractall(directory)
            return
        
        # Bare binary: the download itself is the executable
        target = Path(directory) / "ollama"
        logger.info(f"Installing binary {artifact.name} as {target}")
        try:
            shutil.move(str(artifact), str(target))
        except OSError as e:
            raise InstallError(f"Failed to move {artifact} to {target}: {e}") from e


def _is_tarball(path: Path) -> bool:
    name = path.name.lower()
    if ".tgz" in name or ".tar" in name:
        return True
    try:
        return tarfile.is_tarfile(path)
    except OSError:
        return False
