"""
Retry helpers for runtime operations.

retry_with_backoff re-runs a failing embedding request with doubling
delays; wait_until polls the runtime health probe at a fixed interval.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Backoff policy.

    Attributes:
        max_attempts: Attempts including the first one
        initial_delay_ms: Delay after the first failure, doubled per retry
        max_delay_ms: Upper bound on a single delay
        jitter: Scale each delay by a random factor in [0.75, 1.25]
    """
    max_attempts: int = 3
    initial_delay_ms: float = 250.0
    max_delay_ms: float = 1000.0
    jitter: bool = True

    def delay_seconds(self, failures: int) -> float:
        delay_ms = min(self.initial_delay_ms * (2 ** (failures - 1)), self.max_delay_ms)
        if self.jitter:
            delay_ms *= random.uniform(0.75, 1.25)
        return delay_ms / 1000.0


@dataclass
class RetryOutcome:
    """What retry_with_backoff ended with: a result or the last error."""
    success: bool
    attempts: int
    result: Any = None
    error: Optional[Exception] = None


def retry_with_backoff(
    operation: Callable[[], Any],
    config: RetryConfig,
    retry_on: tuple = (Exception,),
    operation_name: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> RetryOutcome:
    """
    Run operation until it succeeds or the attempt budget is spent.

    Exceptions outside retry_on end the loop at once. Errors are reported
    in the outcome, never raised.
    """
    error: Optional[Exception] = None

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = operation()
        except retry_on as e:
            error = e
            logger.warning(f"{operation_name} failed ({attempt}/{config.max_attempts}): {e}")
            if attempt < config.max_attempts:
                sleep(config.delay_seconds(attempt))
            continue
        except Exception as e:
            logger.error(f"{operation_name} failed with non-retryable error: {e}")
            return RetryOutcome(success=False, attempts=attempt, error=e)

        if attempt > 1:
            logger.info(f"{operation_name} succeeded on attempt {attempt}")
        return RetryOutcome(success=True, attempts=attempt, result=result)

    logger.error(f"{operation_name} gave up after {config.max_attempts} attempts")
    return RetryOutcome(success=False, attempts=config.max_attempts, error=error)


def wait_until(
    predicate: Callable[[], bool],
    attempts: int,
    delay_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
    operation_name: str = "condition",
) -> bool:
    """
    Poll predicate with a fixed delay before every probe.

    Returns:
        True if the predicate held within the attempt budget
    """
    for attempt in range(1, attempts + 1):
        sleep(delay_seconds)
        if predicate():
            logger.debug(f"{operation_name} satisfied on probe {attempt}/{attempts}")
            return True

    logger.warning(f"{operation_name} not satisfied after {attempts} probes")
    return False
