"""
macOS runtime handling.

Releases ship as a disk image containing Ollama.app. The image is mounted
with hdiutil, the bundle copied into the runtime directory, and the image
always detached again.
"""

import logging
import shutil
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from ..core.exceptions import InstallError
from .base import RELEASE_BASE_URL, PlatformStrategy


logger = logging.getLogger(__name__)

APP_BUNDLE = "Ollama.app"


def parse_mount_point(hdiutil_output: str) -> Optional[Path]:
    """
    Extract the mount point from `hdiutil attach` output.
    
    The last column of the line mentioning /Volumes/ is the mount point.
    """
    for line in hdiutil_output.splitlines():
        index = line.find("/Volumes/")
        if index >= 0:
            return Path(line[index:].strip())
    return None


class MacPlatform(PlatformStrategy):
    """macOS strategy: mount the .dmg, copy Ollama.app out, detach."""
    
    name = "darwin"
    executable_candidates = (
        "ollama",
        f"{APP_BUNDLE}/Contents/Resources/ollama",
        "bin/ollama",
    )
    
    def __init__(self, run: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self._run = run
    
    def download_url(self, version: str) -> str:
        return f"{RELEASE_BASE_URL}/{version}/Ollama.dmg"
    
    def find_artifact(self, directory: Path) -> Optional[Path]:
        directory = Path(directory)
        if not directory.is_dir():
            return None
        return self._newest([p for p in directory.iterdir() if p.suffix.lower() == ".dmg"])
    
    def extract(self, artifact: Path, directory: Path) -> None:
        target = Path(directory) / APP_BUNDLE
        with self.mounted(artifact) as mount_point:
            source = mount_point / APP_BUNDLE
            if not source.is_dir():
                raise InstallError(f"{APP_BUNDLE} not found in disk image {artifact.name}")
            if target.exists():
                shutil.rmtree(target)
            logger.info(f"Copying {source} to {target}")
            try:
                shutil.copytree(source, target, symlinks=True)
            except (OSError, shutil.Error) as e:
                raise InstallError(f"Failed to copy {APP_BUNDLE}: {e}") from e
    
    @contextmanager
    def mounted(self, image: Path) -> Iterator[Path]:
        """
        Mount a disk image for the duration of the block.
        
        The image is detached on exit whether or not the block raised.
        
        Raises:
            InstallError: If the image cannot be mounted
        """
        completed = self._run(
            ["hdiutil", "attach", str(image), "-nobrowse"],
            capture_output=True,
            text=True,
        )
        if completed.returncode != 0:
            raise InstallError(
                f"Failed to mount {image.name} (exit {completed.returncode}): "
                f"{(completed.stderr or '').strip()}"
            )
        
        mount_point = parse_mount_point(completed.stdout or "")
        if mount_point is None:
            device = (completed.stdout or "").split()[:1]
            if device:
                self._run(["hdiutil", "detach", device[0]], capture_output=True, text=True)
            raise InstallError(f"Could not determine mount point for {image.name}")
        
        logger.debug(f"Mounted {image.name} at {mount_point}")
        try:
            yield mount_point
        finally:
            detached = self._run(
                ["hdiutil", "detach", str(mount_point)],
                capture_output=True,
                text=True,
            )
            if detached.returncode != 0:
                logger.error(
                    f"Failed to detach {mount_point}: {(detached.stderr or '').strip()}"
                )
