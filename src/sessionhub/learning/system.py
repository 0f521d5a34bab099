"""Learn reusable session patterns from execution outcomes."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from sessionhub.config import LearningSettings
from sessionhub.learning.models import (
    SESSION_OUTCOME_PATTERN,
    ExecutionMetricsSummary,
    ExpectedImprovement,
    InsightType,
    LearningInsight,
    OptimizationRecommendation,
    OptimizationStrategy,
    PatternObservation,
    PatternStatistics,
    PatternType,
    SessionPattern,
    SplittingStrategy,
)
from sessionhub.learning.repository import PatternRepository
from sessionhub.models import ExecutionResult, ExecutionStatus, WorkSession
from sessionhub.planning.complexity import round_half_up
from sessionhub.planning.models import ComplexityComponents, ComplexityScore
from sessionhub.timestamps import utc_now

logger = logging.getLogger(__name__)

INITIAL_CONFIDENCE = 0.5
COMPLEXITY_BUCKET = 20
MEMORY_BUCKET_MB = 100
SIMILAR_COMPLEXITY_DISTANCE = 20
SIMILAR_MEMORY_DISTANCE_MB = 100
SUCCESSFUL_PATTERN_RATE = 0.8
HIGH_MEMORY_MB = 400
MEMORY_OPTIMIZATION_MB = 300
DAYS_PER_DECAY_PERIOD = 30


def calculate_confidence(
    pattern: SessionPattern,
    *,
    now: datetime,
    min_sessions: int = 5,
    decay_factor: float = 0.95,
) -> float:
    """Frequency ratio times success rate times monthly time decay."""

    frequency_factor = min(pattern.frequency / min_sessions, 1.0)
    consistency = pattern.metrics.success_rate
    days_since_seen = max((now - pattern.last_seen).total_seconds() / 86_400, 0.0)
    decay = decay_factor ** (days_since_seen / DAYS_PER_DECAY_PERIOD)
    return frequency_factor * consistency * decay


def pattern_key(*, is_split: bool, complexity: float, memory_mb: float) -> str:
    complexity_bucket = round_half_up(complexity / COMPLEXITY_BUCKET) * COMPLEXITY_BUCKET
    memory_bucket = round_half_up(memory_mb / MEMORY_BUCKET_MB) * MEMORY_BUCKET_MB
    kind = "split" if is_split else "regular"
    return f"{kind}_complexity_{complexity_bucket}_memory_{memory_bucket}"


def describe_pattern(complexity: float, memory_mb: float) -> str:
    if complexity < 30:
        level = "Low"
    elif complexity < 60:
        level = "Medium"
    elif complexity < 85:
        level = "High"
    else:
        level = "Very High"
    if memory_mb < 200:
        memory = "low"
    elif memory_mb < HIGH_MEMORY_MB:
        memory = "moderate"
    else:
        memory = "high"
    return f"{level} complexity session with {memory} memory usage"


def generate_pattern_tags(pattern: SessionPattern) -> list[str]:
    complexity = pattern.overall_complexity
    if complexity < 30:
        tags = ["low-complexity"]
    elif complexity < 60:
        tags = ["medium-complexity"]
    elif complexity < 85:
        tags = ["high-complexity"]
    else:
        tags = ["very-high-complexity"]

    memory = pattern.metrics.memory_usage
    if memory < 200:
        tags.append("low-memory")
    elif memory < HIGH_MEMORY_MB:
        tags.append("moderate-memory")
    else:
        tags.append("high-memory")

    if pattern.metrics.success_rate > 0.9:
        tags.append("highly-successful")
    elif pattern.metrics.success_rate < 0.5:
        tags.append("problematic")
    if pattern.optimization is not None:
        tags.append("optimized")
    if pattern.splitting is not None:
        tags.append("split-session")
    return tags


class PatternLearningSystem:
    """Keep bucketed outcome patterns and derive recommendations from them."""

    def __init__(
        self,
        *,
        repository: PatternRepository,
        settings: LearningSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.settings = settings or LearningSettings()
        self._clock = clock
        self._patterns: dict[str, SessionPattern] = {}
        self._insights: list[LearningInsight] = []

    def load_patterns(self) -> int:
        """Load stored patterns into memory; returns how many were loaded."""

        self._patterns = {pattern.key: pattern for pattern in self.repository.list_patterns()}
        self._insights = self._generate_insights()
        logger.info("Loaded %d session patterns", len(self._patterns))
        return len(self._patterns)

    def learn_from_session(
        self,
        session: WorkSession,
        score: ComplexityScore,
        result: ExecutionResult,
    ) -> SessionPattern:
        now = self._clock()
        key = pattern_key(
            is_split=bool(session.metadata.get("is_split")),
            complexity=score.overall,
            memory_mb=score.estimated_memory_usage,
        )
        existing = self._patterns.get(key)
        if existing is None:
            pattern = self._create_pattern(key, session, score, result, now=now)
        else:
            pattern = self._update_pattern(existing, session, score, result, now=now)
        self._patterns[key] = pattern
        logger.info(
            "Learned from session %s: pattern=%s status=%s frequency=%d confidence=%.2f",
            session.id,
            key,
            result.status.value,
            pattern.frequency,
            pattern.confidence,
        )

        try:
            self.repository.upsert_pattern(pattern)
        except SQLAlchemyError as error:
            logger.error("Failed to store pattern %s: %s", key, error)
        self._insights = self._generate_insights()
        if pattern.confidence > self.settings.confidence_threshold:
            self._publish(pattern, session)
        return pattern

    def get_recommendations(self, score: ComplexityScore) -> list[OptimizationRecommendation]:
        """Strategies proposed from similar high-confidence patterns."""

        similar = [
            pattern
            for pattern in self._patterns.values()
            if abs(pattern.overall_complexity - score.overall) < SIMILAR_COMPLEXITY_DISTANCE
            and abs(pattern.metrics.memory_usage - score.estimated_memory_usage)
            < SIMILAR_MEMORY_DISTANCE_MB
            and pattern.confidence > self.settings.confidence_threshold
        ]
        if not similar:
            return []
        successful = [
            pattern
            for pattern in similar
            if pattern.metrics.success_rate > SUCCESSFUL_PATTERN_RATE
        ]

        recommendations: list[OptimizationRecommendation] = []
        split_patterns = [pattern for pattern in successful if pattern.splitting is not None]
        if score.split_recommended and split_patterns:
            average_count = sum(
                pattern.splitting.split_count for pattern in split_patterns if pattern.splitting
            ) / len(split_patterns)
            first = split_patterns[0].splitting
            average_split = first.average_split_complexity if first is not None else 0.0
            recommendations.append(
                OptimizationRecommendation(
                    strategy=f"Split into {round_half_up(average_count)} focused sessions",
                    expected_improvement=ExpectedImprovement(
                        memory_reduction=40,
                        success_rate_increase=25,
                        duration_reduction=10,
                    ),
                    confidence=0.85,
                    reasoning=[
                        f"Based on {len(split_patterns)} similar successful split sessions",
                        f"Average split complexity: {round_half_up(average_split)}",
                        "Splitting has proven effective for similar complexity levels",
                    ],
                    based_on=len(split_patterns),
                ),
            )

        optimized = [pattern for pattern in successful if pattern.optimization is not None]
        if optimized and score.estimated_memory_usage > MEMORY_OPTIMIZATION_MB:
            reduction = round_half_up(
                sum(
                    pattern.optimization.memory_reduction
                    for pattern in optimized
                    if pattern.optimization
                )
                / len(optimized),
            )
            recommendations.append(
                OptimizationRecommendation(
                    strategy="Apply memory optimization techniques",
                    expected_improvement=ExpectedImprovement(
                        memory_reduction=reduction,
                        success_rate_increase=15,
                        duration_reduction=5,
                    ),
                    confidence=0.75,
                    reasoning=[
                        f"Memory optimization reduced usage by {reduction}% in similar sessions",
                        "High memory usage identified as potential bottleneck",
                        f"{len(optimized)} successful optimizations recorded",
                    ],
                    based_on=len(optimized),
                ),
            )

        recommendations.extend(self._component_recommendations(score, successful))
        return recommendations

    def get_insights(self) -> list[LearningInsight]:
        return list(self._insights)

    def get_patterns(self) -> list[SessionPattern]:
        return sorted(self._patterns.values(), key=lambda item: item.key)

    def get_pattern_statistics(self) -> PatternStatistics:
        patterns = list(self._patterns.values())
        threshold = self.settings.confidence_threshold
        failures = [pattern for pattern in patterns if pattern.type is PatternType.FAILURE]
        optimized = [pattern for pattern in patterns if pattern.optimization is not None]
        return PatternStatistics(
            total_patterns=len(patterns),
            high_confidence_patterns=sum(1 for item in patterns if item.confidence > threshold),
            average_success_rate=(
                round(sum(item.metrics.success_rate for item in patterns) / len(patterns), 2)
                if patterns
                else 0.0
            ),
            most_common_failure_complexity=(
                round_half_up(sum(item.overall_complexity for item in failures) / len(failures))
                if failures
                else 0
            ),
            optimization_effectiveness=(
                round_half_up(
                    sum(item.optimization.effectiveness for item in optimized if item.optimization)
                    / len(optimized)
                    * 100,
                )
                if optimized
                else 0
            ),
        )

    def cleanup_old_patterns(self, days: int | None = None) -> int:
        """Drop stale low-confidence patterns; returns how many were removed."""

        now = self._clock()
        cutoff = now - timedelta(days=days if days is not None else self.settings.prune_after_days)
        removed = 0
        for key, pattern in list(self._patterns.items()):
            pattern.confidence = self._confidence(pattern, now=now)
            if (
                pattern.last_seen < cutoff
                and pattern.confidence < self.settings.prune_below_confidence
            ):
                del self._patterns[key]
                self.repository.delete_pattern(key)
                removed += 1
        if removed:
            self._insights = self._generate_insights()
        logger.info("Cleaned up %d old patterns", removed)
        return removed

    def _create_pattern(
        self,
        key: str,
        session: WorkSession,
        score: ComplexityScore,
        result: ExecutionResult,
        *,
        now: datetime,
    ) -> SessionPattern:
        succeeded = result.status is ExecutionStatus.SUCCESS
        metadata = session.metadata
        applied = metadata.get("optimization_applied")
        return SessionPattern(
            key=key,
            type=PatternType.SUCCESS if succeeded else PatternType.FAILURE,
            description=describe_pattern(score.overall, score.estimated_memory_usage),
            overall_complexity=float(score.overall),
            components=ComplexityComponents.from_dict(score.components.to_dict()),
            metrics=ExecutionMetricsSummary(
                duration=result.metrics.duration_seconds,
                memory_usage=float(score.estimated_memory_usage),
                success_rate=1.0 if succeeded else 0.0,
                error_rate=0.0 if succeeded else 1.0,
            ),
            frequency=1,
            last_seen=now,
            confidence=INITIAL_CONFIDENCE,
            optimization=(
                OptimizationStrategy(
                    applied=[str(item) for item in applied],
                    effectiveness=1.0 if succeeded else 0.0,
                    memory_reduction=float(metadata.get("memory_reduction", 0.0)),
                )
                if isinstance(applied, list) and applied
                else None
            ),
            splitting=(
                SplittingStrategy(
                    original_complexity=float(
                        metadata.get("original_complexity") or score.overall * 2,
                    ),
                    split_count=int(metadata.get("split_total") or 1),
                    average_split_complexity=float(score.overall),
                    success_rate=1.0 if succeeded else 0.0,
                )
                if metadata.get("is_split")
                else None
            ),
        )

    def _update_pattern(
        self,
        pattern: SessionPattern,
        session: WorkSession,
        score: ComplexityScore,
        result: ExecutionResult,
        *,
        now: datetime,
    ) -> SessionPattern:
        succeeded = result.status is ExecutionStatus.SUCCESS
        outcome = 1.0 if succeeded else 0.0
        pattern.frequency += 1
        pattern.last_seen = now
        weight = 1 / pattern.frequency
        metrics = pattern.metrics
        metrics.duration = _blend(metrics.duration, result.metrics.duration_seconds, weight)
        metrics.memory_usage = _blend(metrics.memory_usage, score.estimated_memory_usage, weight)
        metrics.success_rate = _blend(metrics.success_rate, outcome, weight)
        metrics.error_rate = 1 - metrics.success_rate
        pattern.type = (
            PatternType.SUCCESS if metrics.success_rate >= 0.5 else PatternType.FAILURE
        )
        if pattern.optimization is not None:
            pattern.optimization.effectiveness = _blend(
                pattern.optimization.effectiveness,
                outcome,
                weight,
            )
        if pattern.splitting is not None:
            pattern.splitting.success_rate = _blend(pattern.splitting.success_rate, outcome, weight)
            pattern.splitting.average_split_complexity = _blend(
                pattern.splitting.average_split_complexity,
                score.overall,
                weight,
            )
            pattern.splitting.split_count = int(
                session.metadata.get("split_total") or pattern.splitting.split_count,
            )
        pattern.confidence = self._confidence(pattern, now=now)
        return pattern

    def _confidence(self, pattern: SessionPattern, *, now: datetime) -> float:
        return calculate_confidence(
            pattern,
            now=now,
            min_sessions=self.settings.min_sessions_for_pattern,
            decay_factor=self.settings.decay_factor,
        )

    def _component_recommendations(
        self,
        score: ComplexityScore,
        patterns: list[SessionPattern],
    ) -> list[OptimizationRecommendation]:
        recommendations: list[OptimizationRecommendation] = []
        if score.components.integrations > 70:
            integration_heavy = [
                pattern for pattern in patterns if pattern.components.integrations > 60
            ]
            if integration_heavy:
                recommendations.append(
                    OptimizationRecommendation(
                        strategy="Implement integration caching and connection pooling",
                        expected_improvement=ExpectedImprovement(
                            memory_reduction=20,
                            success_rate_increase=30,
                            duration_reduction=25,
                        ),
                        confidence=0.8,
                        reasoning=[
                            "High integration complexity detected",
                            f"{len(integration_heavy)} similar patterns show caching benefits",
                            "Connection pooling reduces overhead significantly",
                        ],
                        based_on=len(integration_heavy),
                    ),
                )
        if score.components.technical_depth > 80:
            recommendations.append(
                OptimizationRecommendation(
                    strategy="Use incremental implementation with validation checkpoints",
                    expected_improvement=ExpectedImprovement(
                        memory_reduction=15,
                        success_rate_increase=35,
                        duration_reduction=10,
                    ),
                    confidence=0.75,
                    reasoning=[
                        "High technical complexity requires careful execution",
                        "Checkpoints allow early failure detection",
                        "Incremental approach proven effective in similar cases",
                    ],
                    based_on=len(patterns),
                ),
            )
        return recommendations

    def _generate_insights(self) -> list[LearningInsight]:
        confident = [
            pattern
            for pattern in self._patterns.values()
            if pattern.confidence > self.settings.confidence_threshold
        ]
        if len(confident) < self.settings.min_sessions_for_pattern:
            return []

        insights: list[LearningInsight] = []
        failures = [pattern for pattern in confident if pattern.type is PatternType.FAILURE]
        if failures:
            average = sum(pattern.overall_complexity for pattern in failures) / len(failures)
            insights.append(
                LearningInsight(
                    type=InsightType.COMPLEXITY,
                    insight=(
                        f"Sessions with complexity above {round_half_up(average)} "
                        "have higher failure rates"
                    ),
                    recommendation=(
                        "Consider splitting sessions with complexity scores above "
                        f"{round_half_up(average * 0.8)}"
                    ),
                    confidence=0.8,
                    based_on=len(failures),
                ),
            )

        high_memory = [
            pattern for pattern in confident if pattern.metrics.memory_usage > HIGH_MEMORY_MB
        ]
        if high_memory:
            rate = sum(pattern.metrics.success_rate for pattern in high_memory) / len(high_memory)
            insights.append(
                LearningInsight(
                    type=InsightType.MEMORY,
                    insight=(
                        f"High memory sessions (>{HIGH_MEMORY_MB}MB) have "
                        f"{round_half_up(rate * 100)}% success rate"
                    ),
                    recommendation=(
                        f"Apply memory optimization for sessions exceeding {HIGH_MEMORY_MB}MB"
                        if rate < 0.7
                        else "Current memory handling is effective"
                    ),
                    confidence=0.75,
                    based_on=len(high_memory),
                ),
            )

        split = [pattern for pattern in confident if pattern.splitting is not None]
        if split:
            rate = sum(
                pattern.splitting.success_rate for pattern in split if pattern.splitting
            ) / len(split)
            insights.append(
                LearningInsight(
                    type=InsightType.SPLITTING,
                    insight=f"Split sessions have {round_half_up(rate * 100)}% success rate",
                    recommendation=(
                        "Session splitting is highly effective for complex tasks"
                        if rate > SUCCESSFUL_PATTERN_RATE
                        else "Review splitting strategies for better success rates"
                    ),
                    confidence=0.85,
                    based_on=len(split),
                ),
            )
        return insights

    def _publish(self, pattern: SessionPattern, session: WorkSession) -> None:
        metadata: dict[str, Any] = {
            "pattern_key": pattern.key,
            "type": pattern.type.value,
            "frequency": pattern.frequency,
            "success_rate": pattern.metrics.success_rate,
            "confidence": pattern.confidence,
            "tags": generate_pattern_tags(pattern),
        }
        try:
            self.repository.record_pattern(
                PatternObservation(
                    pattern_type=SESSION_OUTCOME_PATTERN,
                    pattern=pattern.description,
                    session_id=session.id,
                    user_id=session.user_id,
                    project_id=session.project_id,
                    complexity=pattern.overall_complexity,
                    memory_usage=pattern.metrics.memory_usage,
                    split_recommended=pattern.splitting is not None,
                    metadata=metadata,
                ),
            )
        except SQLAlchemyError as error:
            logger.error("Failed to publish pattern %s: %s", pattern.key, error)


def _blend(current: float, value: float, weight: float) -> float:
    return current * (1 - weight) + value * weight
