"""
Platform strategies for runtime download, install and launch.
"""

import sys
from typing import Optional

from ..core.exceptions import UnsupportedPlatformError
from .base import PlatformStrategy
from .darwin import MacPlatform
from .linux import LinuxPlatform
from .windows import WindowsPlatform


def select_platform(system: Optional[str] = None) -> PlatformStrategy:
    """
    Pick the strategy for the running (or given) operating system.
    
    Args:
        system: sys.platform-style name; defaults to the current interpreter's
        
    Raises:
        UnsupportedPlatformError: If no strategy exists for the platform
    """
    system = system or sys.platform
    if system.startswith("linux"):
        return LinuxPlatform()
    if system == "darwin":
        return MacPlatform()
    if system in ("win32", "cygwin"):
        return WindowsPlatform()
    raise UnsupportedPlatformError(f"Unsupported platform: {system}")


__all__ = [
    "PlatformStrategy",
    "LinuxPlatform",
    "MacPlatform",
    "WindowsPlatform",
    "select_platform",
]
