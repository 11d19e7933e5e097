"""
Runtime installer.

Turns a downloaded artifact into a runnable executable using the selected
platform strategy. Installing is idempotent: an existing executable is only
checked for its permission bit and returned.
"""

import logging
import os
import stat
import subprocess
import tarfile
import zipfile
from pathlib import Path
from typing import Optional

from .core.exceptions import ExecutableNotFoundError, InstallError
from .platforms.base import PlatformStrategy


logger = logging.getLogger(__name__)

EXECUTABLE_MODE = 0o755


class RuntimeInstaller:
    """
    Installs the runtime executable into a directory.
    
    Example:
        >>> installer = RuntimeInstaller(select_platform())
        >>> executable = installer.install(Path("~/.localrag/files/ollama").expanduser())
    """
    
    def __init__(self, platform: PlatformStrategy):
        self.platform = platform
    
    def find_executable(self, directory: Path) -> Optional[Path]:
        """Return the installed executable in directory, if any."""
        return self.platform.find_executable(Path(directory))
    
    def install(self, directory: Path) -> Path:
        """
        Ensure an executable exists in directory and return its path.
        
        Args:
            directory: Runtime directory holding the downloaded artifact
            
        Returns:
            Path to the runnable executable
            
        Raises:
            ExecutableNotFoundError: If neither an executable nor an artifact exists
            InstallError: If extraction or permission fixup fails
        """
        directory = Path(directory)
        
        executable = self.find_executable(directory)
        if executable is not None:
            logger.debug(f"Runtime executable already present: {executable}")
            self._ensure_executable(executable)
            return executable
        
        artifact = self.platform.find_artifact(directory)
        if artifact is None:
            raise ExecutableNotFoundError(
                f"No {self.platform.name} runtime executable or artifact found in {directory}"
            )
        
        logger.info(f"Installing runtime from {artifact.name}")
        try:
            self.platform.extract(artifact, directory)
        except InstallError:
            raise
        except (OSError, subprocess.SubprocessError, tarfile.TarError, zipfile.BadZipFile) as e:
            raise InstallError(f"Failed to extract {artifact.name}: {e}") from e
        
        executable = self.find_executable(directory)
        if executable is None:
            raise InstallError(
                f"Extracted {artifact.name} but no runtime executable was found in {directory}"
            )
        
        self._ensure_executable(executable)
        self._remove_artifact(artifact)
        
        logger.info(f"Runtime installed at {executable}")
        return executable
    
    def _ensure_executable(self, executable: Path) -> None:
        if not self.platform.requires_exec_bit():
            return
        if os.access(executable, os.X_OK):
            return
        try:
            mode = executable.stat().st_mode
            executable.chmod(stat.S_IMODE(mode) | EXECUTABLE_MODE)
            logger.info(f"Fixed executable permission on {executable}")
        except OSError as e:
            raise InstallError(f"Failed to make {executable} executable: {e}") from e
    
    def _remove_artifact(self, artifact: Path) -> None:
        if not artifact.exists():
            return
        try:
            artifact.unlink()
            logger.debug(f"Removed installed artifact {artifact.name}")
        except OSError as e:
            logger.error(f"Failed to remove artifact {artifact}: {e}")
