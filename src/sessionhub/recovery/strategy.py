"""Recovery strategy selection."""

from __future__ import annotations

from collections.abc import Sequence

from sessionhub.persistence.models import Checkpoint
from sessionhub.recovery.models import (
    ErrorCategory,
    ManualStrategy,
    RecoveryStrategy,
    RetryStrategy,
    RollbackStrategy,
    SkipStrategy,
)

NETWORK_RETRY_ATTEMPTS = 3
EXECUTION_RETRY_ATTEMPTS = 2
UNKNOWN_RETRY_ATTEMPTS = 1


def calculate_backoff(
    retry_count: int,
    *,
    base_seconds: float,
    max_seconds: float,
) -> float:
    """Exponential backoff ``base * 2**retry_count`` capped at ``max_seconds``."""

    return min(base_seconds * (2**retry_count), max_seconds)


def decide_strategy(
    *,
    category: ErrorCategory,
    retry_count: int,
    checkpoints: Sequence[Checkpoint],
    max_retry_attempts: int,
    base_backoff_seconds: float,
    max_backoff_seconds: float,
) -> RecoveryStrategy:
    """Map an error category to a strategy; the retry ceiling forces manual.

    ``checkpoints`` must be ordered newest first.
    """

    if retry_count >= max_retry_attempts:
        return ManualStrategy()
    if category is ErrorCategory.NETWORK:
        return RetryStrategy(
            max_attempts=NETWORK_RETRY_ATTEMPTS,
            backoff_seconds=calculate_backoff(
                retry_count,
                base_seconds=base_backoff_seconds,
                max_seconds=max_backoff_seconds,
            ),
        )
    if category is ErrorCategory.VALIDATION:
        restorable = [item for item in checkpoints if item.can_restore]
        if restorable:
            return RollbackStrategy(checkpoint_id=restorable[0].id)
        return SkipStrategy()
    if category is ErrorCategory.EXECUTION:
        return RetryStrategy(
            max_attempts=EXECUTION_RETRY_ATTEMPTS,
            backoff_seconds=base_backoff_seconds,
        )
    if category is ErrorCategory.FATAL:
        return ManualStrategy()
    return RetryStrategy(
        max_attempts=UNKNOWN_RETRY_ATTEMPTS,
        backoff_seconds=base_backoff_seconds,
    )
