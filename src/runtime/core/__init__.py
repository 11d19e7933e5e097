"""
Core types, exceptions, logging and progress plumbing for the runtime module.
"""

from .exceptions import RuntimeServiceError
from .progress import Done, InProgress, ProgressChannel
from .types import ProgressEvent, ProgressPhase, RuntimeConfig, RuntimePhase, RuntimeState, ServiceResult

__all__ = [
    "RuntimeServiceError",
    "Done",
    "InProgress",
    "ProgressChannel",
    "ProgressEvent",
    "ProgressPhase",
    "RuntimeConfig",
    "RuntimePhase",
    "RuntimeState",
    "ServiceResult",
]
