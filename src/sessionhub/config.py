"""Runtime configuration for session analysis, orchestration and learning."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class ComplexitySettings:
    """Complexity analyzer thresholds."""

    small_threshold: int = 30
    medium_threshold: int = 60
    large_threshold: int = 85
    memory_threshold_mb: int = 500
    history_complexity_threshold: float = 70.0
    history_factor_multiplier: float = 1.2


@dataclass(slots=True)
class SplittingSettings:
    """Default options of the splitting engine."""

    max_complexity_per_split: int = 40
    max_memory_per_split: int = 300
    preserve_logical_grouping: bool = True
    enable_parallel_execution: bool = False
    prioritize_by_dependency: bool = True


@dataclass(slots=True)
class OrchestrationSettings:
    """Default workflow execution options."""

    continue_on_failure: bool = False
    max_parallel_units: int = 1
    retry_failed_units: bool = True
    max_retries: int = 2
    retry_delay_seconds: float = 1.0
    pause_between_units_seconds: float = 1.0
    preserve_context: bool = True


@dataclass(slots=True)
class RecoverySettings:
    """Retry budget and backoff policy of the recovery service."""

    max_retry_attempts: int = 3
    base_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    error_history_limit: int = 100


@dataclass(slots=True)
class PersistenceSettings:
    """Session blob and checkpoint retention."""

    data_dir: Path = Path(".sessionhub")
    max_checkpoints_per_session: int = 10
    session_retention_days: int = 30


@dataclass(slots=True)
class AutoSaveSettings:
    """Background auto-save loop settings."""

    enabled: bool = True
    interval_seconds: float = 30.0
    max_snapshots: int = 1_000
    checkpoint_on_save: bool = True


@dataclass(slots=True)
class LearningSettings:
    """Pattern learning thresholds."""

    confidence_threshold: float = 0.7
    min_sessions_for_pattern: int = 5
    decay_factor: float = 0.95
    prune_after_days: int = 90
    prune_below_confidence: float = 0.5


@dataclass(slots=True)
class UserContextSettings:
    """User context settings."""

    user_id: str = "default_user"
    project_id: str = "default_project"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".sessionhub.db")
    sqlite_busy_timeout_ms: int = 5_000
    complexity: ComplexitySettings = field(default_factory=ComplexitySettings)
    splitting: SplittingSettings = field(default_factory=SplittingSettings)
    orchestration: OrchestrationSettings = field(default_factory=OrchestrationSettings)
    recovery: RecoverySettings = field(default_factory=RecoverySettings)
    persistence: PersistenceSettings = field(default_factory=PersistenceSettings)
    autosave: AutoSaveSettings = field(default_factory=AutoSaveSettings)
    learning: LearningSettings = field(default_factory=LearningSettings)
    user_context: UserContextSettings = field(default_factory=UserContextSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        settings = cls(
            db_path=db_path or Path(os.getenv("SESSIONHUB_DB_PATH", ".sessionhub.db")),
            sqlite_busy_timeout_ms=int(os.getenv("SESSIONHUB_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            complexity=ComplexitySettings(
                small_threshold=int(os.getenv("SESSIONHUB_COMPLEXITY_SMALL", "30")),
                medium_threshold=int(os.getenv("SESSIONHUB_COMPLEXITY_MEDIUM", "60")),
                large_threshold=int(os.getenv("SESSIONHUB_COMPLEXITY_LARGE", "85")),
                memory_threshold_mb=int(os.getenv("SESSIONHUB_MEMORY_THRESHOLD_MB", "500")),
                history_complexity_threshold=float(
                    os.getenv("SESSIONHUB_HISTORY_COMPLEXITY_THRESHOLD", "70"),
                ),
                history_factor_multiplier=float(
                    os.getenv("SESSIONHUB_HISTORY_FACTOR_MULTIPLIER", "1.2"),
                ),
            ),
            splitting=SplittingSettings(
                max_complexity_per_split=int(
                    os.getenv("SESSIONHUB_SPLIT_MAX_COMPLEXITY", "40"),
                ),
                max_memory_per_split=int(os.getenv("SESSIONHUB_SPLIT_MAX_MEMORY_MB", "300")),
                preserve_logical_grouping=_env_bool(
                    "SESSIONHUB_SPLIT_PRESERVE_GROUPING",
                    default=True,
                ),
                enable_parallel_execution=_env_bool(
                    "SESSIONHUB_SPLIT_PARALLEL",
                    default=False,
                ),
                prioritize_by_dependency=_env_bool(
                    "SESSIONHUB_SPLIT_PRIORITIZE_BY_DEPENDENCY",
                    default=True,
                ),
            ),
            orchestration=OrchestrationSettings(
                continue_on_failure=_env_bool(
                    "SESSIONHUB_WORKFLOW_CONTINUE_ON_FAILURE",
                    default=False,
                ),
                max_parallel_units=int(os.getenv("SESSIONHUB_WORKFLOW_MAX_PARALLEL", "1")),
                retry_failed_units=_env_bool("SESSIONHUB_WORKFLOW_RETRY_FAILED", default=True),
                max_retries=int(os.getenv("SESSIONHUB_WORKFLOW_MAX_RETRIES", "2")),
                retry_delay_seconds=float(
                    os.getenv("SESSIONHUB_WORKFLOW_RETRY_DELAY_SECONDS", "1.0"),
                ),
                pause_between_units_seconds=float(
                    os.getenv("SESSIONHUB_WORKFLOW_PAUSE_BETWEEN_UNITS_SECONDS", "1.0"),
                ),
                preserve_context=_env_bool(
                    "SESSIONHUB_WORKFLOW_PRESERVE_CONTEXT",
                    default=True,
                ),
            ),
            recovery=RecoverySettings(
                max_retry_attempts=int(os.getenv("SESSIONHUB_RECOVERY_MAX_ATTEMPTS", "3")),
                base_backoff_seconds=float(
                    os.getenv("SESSIONHUB_RECOVERY_BASE_BACKOFF_SECONDS", "1.0"),
                ),
                max_backoff_seconds=float(
                    os.getenv("SESSIONHUB_RECOVERY_MAX_BACKOFF_SECONDS", "30.0"),
                ),
                error_history_limit=int(os.getenv("SESSIONHUB_RECOVERY_HISTORY_LIMIT", "100")),
            ),
            persistence=PersistenceSettings(
                data_dir=Path(os.getenv("SESSIONHUB_DATA_DIR", ".sessionhub")),
                max_checkpoints_per_session=int(
                    os.getenv("SESSIONHUB_MAX_CHECKPOINTS_PER_SESSION", "10"),
                ),
                session_retention_days=int(
                    os.getenv("SESSIONHUB_SESSION_RETENTION_DAYS", "30"),
                ),
            ),
            autosave=AutoSaveSettings(
                enabled=_env_bool("SESSIONHUB_AUTOSAVE_ENABLED", default=True),
                interval_seconds=float(os.getenv("SESSIONHUB_AUTOSAVE_INTERVAL_SECONDS", "30")),
                max_snapshots=int(os.getenv("SESSIONHUB_AUTOSAVE_MAX_SNAPSHOTS", "1000")),
                checkpoint_on_save=_env_bool(
                    "SESSIONHUB_AUTOSAVE_CHECKPOINT_ON_SAVE",
                    default=True,
                ),
            ),
            learning=LearningSettings(
                confidence_threshold=float(
                    os.getenv("SESSIONHUB_LEARNING_CONFIDENCE_THRESHOLD", "0.7"),
                ),
                min_sessions_for_pattern=int(
                    os.getenv("SESSIONHUB_LEARNING_MIN_SESSIONS", "5"),
                ),
                decay_factor=float(os.getenv("SESSIONHUB_LEARNING_DECAY_FACTOR", "0.95")),
                prune_after_days=int(os.getenv("SESSIONHUB_LEARNING_PRUNE_AFTER_DAYS", "90")),
                prune_below_confidence=float(
                    os.getenv("SESSIONHUB_LEARNING_PRUNE_BELOW_CONFIDENCE", "0.5"),
                ),
            ),
            user_context=UserContextSettings(
                user_id=os.getenv("SESSIONHUB_USER_ID", "default_user"),
                project_id=os.getenv("SESSIONHUB_PROJECT_ID", "default_project"),
            ),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Reject settings that would make the core misbehave."""

        complexity = self.complexity
        if not (
            0 < complexity.small_threshold < complexity.medium_threshold
            < complexity.large_threshold <= 100
        ):
            raise ValueError(
                "SESSIONHUB_COMPLEXITY_SMALL < SESSIONHUB_COMPLEXITY_MEDIUM < "
                "SESSIONHUB_COMPLEXITY_LARGE must hold within 1..100.",
            )
        if complexity.memory_threshold_mb <= 0:
            raise ValueError("SESSIONHUB_MEMORY_THRESHOLD_MB must be > 0.")
        if complexity.history_factor_multiplier < 1.0:
            raise ValueError("SESSIONHUB_HISTORY_FACTOR_MULTIPLIER must be >= 1.0.")
        if self.splitting.max_complexity_per_split <= 0:
            raise ValueError("SESSIONHUB_SPLIT_MAX_COMPLEXITY must be > 0.")
        if self.splitting.max_memory_per_split <= 0:
            raise ValueError("SESSIONHUB_SPLIT_MAX_MEMORY_MB must be > 0.")
        if self.orchestration.max_parallel_units < 1:
            raise ValueError("SESSIONHUB_WORKFLOW_MAX_PARALLEL must be >= 1.")
        if self.orchestration.max_retries < 0:
            raise ValueError("SESSIONHUB_WORKFLOW_MAX_RETRIES must be >= 0.")
        if self.orchestration.retry_delay_seconds < 0:
            raise ValueError("SESSIONHUB_WORKFLOW_RETRY_DELAY_SECONDS must be >= 0.")
        if self.orchestration.pause_between_units_seconds < 0:
            raise ValueError("SESSIONHUB_WORKFLOW_PAUSE_BETWEEN_UNITS_SECONDS must be >= 0.")
        if self.recovery.max_retry_attempts < 0:
            raise ValueError("SESSIONHUB_RECOVERY_MAX_ATTEMPTS must be >= 0.")
        if self.recovery.base_backoff_seconds < 0:
            raise ValueError("SESSIONHUB_RECOVERY_BASE_BACKOFF_SECONDS must be >= 0.")
        if self.recovery.max_backoff_seconds < self.recovery.base_backoff_seconds:
            raise ValueError(
                "SESSIONHUB_RECOVERY_MAX_BACKOFF_SECONDS must be >= "
                "SESSIONHUB_RECOVERY_BASE_BACKOFF_SECONDS.",
            )
        if self.recovery.error_history_limit < 1:
            raise ValueError("SESSIONHUB_RECOVERY_HISTORY_LIMIT must be >= 1.")
        if self.persistence.max_checkpoints_per_session < 1:
            raise ValueError("SESSIONHUB_MAX_CHECKPOINTS_PER_SESSION must be >= 1.")
        if self.persistence.session_retention_days < 0:
            raise ValueError("SESSIONHUB_SESSION_RETENTION_DAYS must be >= 0.")
        if self.autosave.interval_seconds <= 0:
            raise ValueError("SESSIONHUB_AUTOSAVE_INTERVAL_SECONDS must be > 0.")
        if self.autosave.max_snapshots < 1:
            raise ValueError("SESSIONHUB_AUTOSAVE_MAX_SNAPSHOTS must be >= 1.")
        if not 0.0 <= self.learning.confidence_threshold <= 1.0:
            raise ValueError("SESSIONHUB_LEARNING_CONFIDENCE_THRESHOLD must be within [0, 1].")
        if not 0.0 < self.learning.decay_factor <= 1.0:
            raise ValueError("SESSIONHUB_LEARNING_DECAY_FACTOR must be within (0, 1].")
        if self.learning.min_sessions_for_pattern < 1:
            raise ValueError("SESSIONHUB_LEARNING_MIN_SESSIONS must be >= 1.")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
