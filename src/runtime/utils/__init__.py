"""
Utility helpers for the runtime module.
"""

from .retry import RetryConfig, RetryOutcome, retry_with_backoff, wait_until

__all__ = ["RetryConfig", "RetryOutcome", "retry_with_backoff", "wait_until"]
