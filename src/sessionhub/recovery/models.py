"""Typed models for error recovery."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error classes that drive the recovery strategy."""

    NETWORK = "network"
    VALIDATION = "validation"
    EXECUTION = "execution"
    FATAL = "fatal"
    UNKNOWN = "unknown"


class StrategyType(str, Enum):
    """Discriminator of recovery strategies."""

    RETRY = "retry"
    ROLLBACK = "rollback"
    SKIP = "skip"
    MANUAL = "manual"


@dataclass(frozen=True, slots=True)
class RetryStrategy:
    """Re-run the failed phase up to ``max_attempts`` times."""

    max_attempts: int
    backoff_seconds: float

    @property
    def type(self) -> StrategyType:
        return StrategyType.RETRY


@dataclass(frozen=True, slots=True)
class RollbackStrategy:
    """Restore the state captured by ``checkpoint_id``."""

    checkpoint_id: str

    @property
    def type(self) -> StrategyType:
        return StrategyType.ROLLBACK


@dataclass(frozen=True, slots=True)
class SkipStrategy:
    """Mark the phase as skipped and move on."""

    @property
    def type(self) -> StrategyType:
        return StrategyType.SKIP


@dataclass(frozen=True, slots=True)
class ManualStrategy:
    """Stop automation; an operator has to intervene."""

    @property
    def type(self) -> StrategyType:
        return StrategyType.MANUAL


RecoveryStrategy = RetryStrategy | RollbackStrategy | SkipStrategy | ManualStrategy


@dataclass(slots=True)
class ErrorContext:
    """One handled error in a session's history."""

    session_id: str
    phase: str
    message: str
    category: ErrorCategory
    timestamp: datetime
    retry_count: int


@dataclass(slots=True)
class RecoveryResult:
    """Outcome of handling an error."""

    success: bool
    strategy: RecoveryStrategy
    attempt_count: int
    recovered: bool
    error: str | None = None
    new_state: dict[str, Any] | None = None


@dataclass(slots=True)
class RecoveryStatistics:
    """Counters over all tracked sessions."""

    total_sessions: int
    total_errors: int
    total_recovery_attempts: int
    error_categories: dict[str, int]
    strategies: dict[str, int]
