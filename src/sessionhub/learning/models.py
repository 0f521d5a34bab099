"""Typed models for learned session patterns."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from sessionhub.models import DEFAULT_PROJECT_ID, DEFAULT_USER_ID
from sessionhub.planning.models import ComplexityComponents
from sessionhub.timestamps import parse_timestamp

SESSION_COMPLEXITY_PATTERN = "session_complexity"
SESSION_OUTCOME_PATTERN = "session_outcome"


class PatternType(str, Enum):
    """Kind of learned session pattern."""

    SUCCESS = "success"
    FAILURE = "failure"
    OPTIMIZATION = "optimization"
    SPLITTING = "splitting"


class InsightType(str, Enum):
    """Topic of a learning insight."""

    COMPLEXITY = "complexity"
    MEMORY = "memory"
    SPLITTING = "splitting"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(slots=True)
class PatternObservation:
    """Row of the pattern-recognition store."""

    pattern_type: str
    pattern: str
    session_id: str | None = None
    user_id: str = DEFAULT_USER_ID
    project_id: str = DEFAULT_PROJECT_ID
    complexity: float | None = None
    memory_usage: float | None = None
    split_recommended: bool | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


class PatternStore(Protocol):
    """Pattern-recognition store used for the analyzer's historical prior."""

    def record_pattern(self, observation: PatternObservation) -> None:
        """Persist one observation."""

    def get_relevant_patterns(
        self,
        *,
        session_id: str | None,
        user_id: str,
        project_id: str,
        pattern_type: str | None = None,
    ) -> list[PatternObservation]:
        """Observations recorded for the same user/project scope."""


@dataclass(slots=True)
class ExecutionMetricsSummary:
    """Running averages of pattern outcomes."""

    duration: float
    memory_usage: float
    success_rate: float
    error_rate: float


@dataclass(slots=True)
class OptimizationStrategy:
    """Optimizations that were applied in sessions of a pattern."""

    applied: list[str]
    effectiveness: float
    memory_reduction: float


@dataclass(slots=True)
class SplittingStrategy:
    """Splitting details of split sessions of a pattern."""

    original_complexity: float
    split_count: int
    average_split_complexity: float
    success_rate: float


@dataclass(slots=True)
class SessionPattern:
    """Learned pattern for a complexity/memory bucket."""

    key: str
    type: PatternType
    description: str
    overall_complexity: float
    components: ComplexityComponents
    metrics: ExecutionMetricsSummary
    frequency: int
    last_seen: datetime
    confidence: float
    optimization: OptimizationStrategy | None = None
    splitting: SplittingStrategy | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "type": self.type.value,
            "description": self.description,
            "complexity": {
                "overall": self.overall_complexity,
                "components": self.components.to_dict(),
            },
            "execution_metrics": {
                "duration": self.metrics.duration,
                "memory_usage": self.metrics.memory_usage,
                "success_rate": self.metrics.success_rate,
                "error_rate": self.metrics.error_rate,
            },
            "optimization_strategy": (
                {
                    "applied": list(self.optimization.applied),
                    "effectiveness": self.optimization.effectiveness,
                    "memory_reduction": self.optimization.memory_reduction,
                }
                if self.optimization is not None
                else None
            ),
            "splitting_strategy": (
                {
                    "original_complexity": self.splitting.original_complexity,
                    "split_count": self.splitting.split_count,
                    "average_split_complexity": self.splitting.average_split_complexity,
                    "success_rate": self.splitting.success_rate,
                }
                if self.splitting is not None
                else None
            ),
            "frequency": self.frequency,
            "last_seen": self.last_seen.isoformat(),
            "confidence": self.confidence,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SessionPattern:
        complexity = payload.get("complexity") or {}
        metrics = payload.get("execution_metrics") or {}
        optimization = payload.get("optimization_strategy")
        splitting = payload.get("splitting_strategy")
        return cls(
            key=str(payload["key"]),
            type=PatternType(str(payload["type"])),
            description=str(payload.get("description", "")),
            overall_complexity=float(complexity.get("overall", 0.0)),
            components=ComplexityComponents.from_dict(complexity.get("components") or {}),
            metrics=ExecutionMetricsSummary(
                duration=float(metrics.get("duration", 0.0)),
                memory_usage=float(metrics.get("memory_usage", 0.0)),
                success_rate=float(metrics.get("success_rate", 0.0)),
                error_rate=float(metrics.get("error_rate", 1.0)),
            ),
            frequency=int(payload.get("frequency", 1)),
            last_seen=parse_timestamp(str(payload["last_seen"])),
            confidence=float(payload.get("confidence", 0.5)),
            optimization=(
                OptimizationStrategy(
                    applied=[str(item) for item in optimization.get("applied", [])],
                    effectiveness=float(optimization.get("effectiveness", 0.0)),
                    memory_reduction=float(optimization.get("memory_reduction", 0.0)),
                )
                if isinstance(optimization, dict)
                else None
            ),
            splitting=(
                SplittingStrategy(
                    original_complexity=float(splitting.get("original_complexity", 0.0)),
                    split_count=int(splitting.get("split_count", 1)),
                    average_split_complexity=float(
                        splitting.get("average_split_complexity", 0.0),
                    ),
                    success_rate=float(splitting.get("success_rate", 0.0)),
                )
                if isinstance(splitting, dict)
                else None
            ),
        )


@dataclass(slots=True)
class ExpectedImprovement:
    """Estimated percentage gains of a recommendation."""

    memory_reduction: int
    success_rate_increase: int
    duration_reduction: int


@dataclass(slots=True)
class OptimizationRecommendation:
    """Strategy proposed from similar successful patterns."""

    strategy: str
    expected_improvement: ExpectedImprovement
    confidence: float
    reasoning: list[str]
    based_on: int = 0


@dataclass(slots=True)
class LearningInsight:
    """Observation derived from high-confidence patterns."""

    type: InsightType
    insight: str
    recommendation: str
    confidence: float
    based_on: int


@dataclass(slots=True)
class PatternStatistics:
    """Aggregate view over learned patterns."""

    total_patterns: int
    high_confidence_patterns: int
    average_success_rate: float
    most_common_failure_complexity: int
    optimization_effectiveness: int
