"""Recovery service: classify a failed phase and apply a recovery strategy."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sessionhub.config import RecoverySettings
from sessionhub.persistence.store import SessionPersistence
from sessionhub.recovery.failure_classifier import classify_error
from sessionhub.recovery.models import (
    ErrorContext,
    ManualStrategy,
    RecoveryResult,
    RecoveryStatistics,
    RecoveryStrategy,
    RetryStrategy,
    RollbackStrategy,
    SkipStrategy,
)
from sessionhub.recovery.strategy import decide_strategy
from sessionhub.timestamps import utc_now

logger = logging.getLogger(__name__)

RetryOperation = Callable[[], Awaitable[bool]]
Sleep = Callable[[float], Awaitable[None]]


class RecoveryService:
    """Apply retry, rollback, skip or manual recovery per session.

    The retry counter is cumulative over a session's lifetime; once it reaches
    ``max_retry_attempts`` every further error is routed to manual recovery.
    """

    def __init__(
        self,
        *,
        persistence: SessionPersistence,
        settings: RecoverySettings | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.persistence = persistence
        self.settings = settings or RecoverySettings()
        self._sleep = sleep
        self._error_history: dict[str, list[ErrorContext]] = {}
        self._retry_counts: dict[str, int] = {}
        self._strategy_counts: dict[str, int] = {}

    async def handle_error(
        self,
        *,
        session_id: str,
        state: dict[str, Any],
        error: BaseException | str,
        phase: str,
        retry_operation: RetryOperation | None = None,
    ) -> RecoveryResult:
        """Classify ``error`` and run the selected strategy.

        ``retry_operation`` re-runs the failed phase and returns whether it
        succeeded; it is required for retry strategies to make progress.
        """

        classification = classify_error(error)
        retry_count = self.get_retry_count(session_id)
        self._add_to_history(
            ErrorContext(
                session_id=session_id,
                phase=phase,
                message=str(error),
                category=classification.category,
                timestamp=utc_now(),
                retry_count=retry_count,
            ),
        )
        attempt_count = self._increment_retry_count(session_id)
        strategy: RecoveryStrategy = ManualStrategy()
        try:
            strategy = decide_strategy(
                category=classification.category,
                retry_count=retry_count,
                checkpoints=self.persistence.get_checkpoints(session_id),
                max_retry_attempts=self.settings.max_retry_attempts,
                base_backoff_seconds=self.settings.base_backoff_seconds,
                max_backoff_seconds=self.settings.max_backoff_seconds,
            )
            self._strategy_counts[strategy.type.value] = (
                self._strategy_counts.get(strategy.type.value, 0) + 1
            )
            logger.info(
                "Recovering session %s phase %s with %s (%s)",
                session_id,
                phase,
                strategy.type.value,
                classification.to_event_details(session_id=session_id, phase=phase),
            )
            return await self._execute(
                session_id=session_id,
                state=state,
                phase=phase,
                strategy=strategy,
                retry_operation=retry_operation,
            )
        except (OSError, TypeError, ValueError) as recovery_error:
            logger.error(
                "Recovery strategy %s failed for session %s: %s",
                strategy.type.value,
                session_id,
                recovery_error,
            )
            return RecoveryResult(
                success=False,
                strategy=strategy,
                attempt_count=attempt_count,
                recovered=False,
                error=str(recovery_error),
            )

    def get_retry_count(self, session_id: str) -> int:
        return self._retry_counts.get(session_id, 0)

    def reset_retry_count(self, session_id: str) -> None:
        self._retry_counts.pop(session_id, None)

    def get_error_history(self, session_id: str) -> list[ErrorContext]:
        return list(self._error_history.get(session_id, []))

    def clear_error_history(self, session_id: str) -> None:
        self._error_history.pop(session_id, None)
        self._retry_counts.pop(session_id, None)

    def get_statistics(self) -> RecoveryStatistics:
        categories: dict[str, int] = {}
        total_errors = 0
        for history in self._error_history.values():
            total_errors += len(history)
            for context in history:
                categories[context.category.value] = categories.get(context.category.value, 0) + 1
        return RecoveryStatistics(
            total_sessions=len(self._error_history),
            total_errors=total_errors,
            total_recovery_attempts=sum(self._retry_counts.values()),
            error_categories=categories,
            strategies=dict(self._strategy_counts),
        )

    async def _execute(
        self,
        *,
        session_id: str,
        state: dict[str, Any],
        phase: str,
        strategy: RecoveryStrategy,
        retry_operation: RetryOperation | None,
    ) -> RecoveryResult:
        if isinstance(strategy, RetryStrategy):
            return await self._retry(session_id, state, phase, strategy, retry_operation)
        if isinstance(strategy, RollbackStrategy):
            return self._rollback(session_id, strategy)
        if isinstance(strategy, SkipStrategy):
            return self._skip(session_id, state, phase, strategy)
        if isinstance(strategy, ManualStrategy):
            logger.warning(
                "Manual intervention required for session %s phase %s",
                session_id,
                phase,
            )
            return RecoveryResult(
                success=False,
                strategy=strategy,
                attempt_count=0,
                recovered=False,
                error="Manual intervention required",
            )
        raise TypeError(f"Unsupported recovery strategy: {strategy!r}")

    async def _retry(
        self,
        session_id: str,
        state: dict[str, Any],
        phase: str,
        strategy: RetryStrategy,
        retry_operation: RetryOperation | None,
    ) -> RecoveryResult:
        if retry_operation is None:
            return RecoveryResult(
                success=False,
                strategy=strategy,
                attempt_count=0,
                recovered=False,
                error=f"No retry operation available for phase {phase}",
            )
        for attempt in range(1, strategy.max_attempts + 1):
            delay = min(strategy.backoff_seconds * attempt, self.settings.max_backoff_seconds)
            logger.info(
                "Retrying session %s phase %s (attempt %d/%d) in %.1fs",
                session_id,
                phase,
                attempt,
                strategy.max_attempts,
                delay,
            )
            await self._sleep(delay)
            self.persistence.create_checkpoint(session_id, state, f"{phase}_retry_{attempt}")
            try:
                succeeded = await retry_operation()
            except Exception as error:  # noqa: BLE001
                logger.warning(
                    "Retry %d of session %s phase %s failed: %s",
                    attempt,
                    session_id,
                    phase,
                    error,
                )
                succeeded = False
            if succeeded:
                return RecoveryResult(
                    success=True,
                    strategy=strategy,
                    attempt_count=attempt,
                    recovered=True,
                )
        return RecoveryResult(
            success=False,
            strategy=strategy,
            attempt_count=strategy.max_attempts,
            recovered=False,
            error="Max retry attempts exceeded",
        )

    def _rollback(self, session_id: str, strategy: RollbackStrategy) -> RecoveryResult:
        restored = self.persistence.restore_from_checkpoint(session_id, strategy.checkpoint_id)
        if restored is None:
            return RecoveryResult(
                success=False,
                strategy=strategy,
                attempt_count=1,
                recovered=False,
                error="Failed to restore from checkpoint",
            )
        logger.info("Rolled back session %s to checkpoint %s", session_id, strategy.checkpoint_id)
        return RecoveryResult(
            success=True,
            strategy=strategy,
            attempt_count=1,
            recovered=True,
            new_state=restored,
        )

    def _skip(
        self,
        session_id: str,
        state: dict[str, Any],
        phase: str,
        strategy: SkipStrategy,
    ) -> RecoveryResult:
        logger.info("Skipping failed phase %s of session %s", phase, session_id)
        self.persistence.create_checkpoint(
            session_id,
            {**state, "skipped_phase": phase},
            f"{phase}_skipped",
        )
        return RecoveryResult(
            success=True,
            strategy=strategy,
            attempt_count=1,
            recovered=False,
        )

    def _add_to_history(self, context: ErrorContext) -> None:
        history = self._error_history.setdefault(context.session_id, [])
        history.append(context)
        overflow = len(history) - self.settings.error_history_limit
        if overflow > 0:
            del history[:overflow]

    def _increment_retry_count(self, session_id: str) -> int:
        count = self.get_retry_count(session_id) + 1
        self._retry_counts[session_id] = count
        return count
