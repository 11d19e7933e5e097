"""
Application layer.

Wires configuration, the runtime supervisor and the ingestion pipeline into
one explicitly owned context, and exposes them on the command line.
"""

from .config import AppConfig, ConfigError, load_config
from .context import AppContext

__version__ = "0.1.0"

__all__ = [
    "AppConfig",
    "ConfigError",
    "load_config",
    "AppContext",
]
