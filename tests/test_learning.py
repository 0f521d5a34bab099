from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure
import pytest

from sessionhub.config import LearningSettings
from sessionhub.learning.models import (
    SESSION_OUTCOME_PATTERN,
    ExecutionMetricsSummary,
    InsightType,
    PatternType,
    SessionPattern,
)
from sessionhub.learning.repository import PatternRepository
from sessionhub.learning.system import PatternLearningSystem, calculate_confidence, pattern_key
from sessionhub.models import ExecutionMetrics, ExecutionResult, ExecutionStatus, WorkSession
from sessionhub.planning.models import ComplexityComponents, ComplexityScore

pytestmark = [
    allure.epic("Pattern Learning"),
    allure.feature("Session Patterns"),
]

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _score(overall: int, memory: int, **components: float) -> ComplexityScore:
    return ComplexityScore(
        overall=overall,
        components=ComplexityComponents(**components),
        estimated_memory_usage=memory,
        split_recommended=overall > 60 or memory > 500,
    )


def _result(status: ExecutionStatus = ExecutionStatus.SUCCESS) -> ExecutionResult:
    return ExecutionResult(
        session_id="s",
        status=status,
        metrics=ExecutionMetrics(duration_seconds=120.0),
    )


def _pattern(*, frequency: int, success_rate: float, last_seen: datetime) -> SessionPattern:
    return SessionPattern(
        key="regular_complexity_40_memory_100",
        type=PatternType.SUCCESS,
        description="",
        overall_complexity=40.0,
        components=ComplexityComponents(),
        metrics=ExecutionMetricsSummary(
            duration=60.0,
            memory_usage=100.0,
            success_rate=success_rate,
            error_rate=1 - success_rate,
        ),
        frequency=frequency,
        last_seen=last_seen,
        confidence=0.5,
    )


def test_confidence_combines_frequency_consistency_and_decay() -> None:
    fresh = _pattern(frequency=5, success_rate=1.0, last_seen=NOW)
    rare = _pattern(frequency=2, success_rate=1.0, last_seen=NOW)
    mixed = _pattern(frequency=10, success_rate=0.25, last_seen=NOW)
    failing = _pattern(frequency=5, success_rate=0.0, last_seen=NOW)

    assert calculate_confidence(fresh, now=NOW) == pytest.approx(1.0)
    assert calculate_confidence(rare, now=NOW) == pytest.approx(0.4)
    assert calculate_confidence(mixed, now=NOW) == pytest.approx(0.25)
    assert calculate_confidence(failing, now=NOW) == 0.0
    assert calculate_confidence(fresh, now=NOW + timedelta(days=30)) == pytest.approx(0.95)

    ages = [0, 10, 45, 120, 365]
    values = [calculate_confidence(fresh, now=NOW + timedelta(days=age)) for age in ages]
    assert values == sorted(values, reverse=True)


def test_pattern_key_buckets_complexity_and_memory() -> None:
    assert pattern_key(is_split=False, complexity=74, memory_mb=559) == (
        "regular_complexity_80_memory_600"
    )
    assert pattern_key(is_split=True, complexity=50, memory_mb=250) == (
        "split_complexity_60_memory_300"
    )


def test_repeated_outcomes_raise_confidence_and_publish(repository: PatternRepository) -> None:
    system = PatternLearningSystem(repository=repository, clock=FixedClock(NOW))
    session = WorkSession(id="s1", name="Billing")
    score = _score(74, 559, integrations=75, technical_depth=100)

    confidences = [
        system.learn_from_session(session, score, _result()).confidence for _ in range(5)
    ]

    assert confidences[0] == 0.5
    assert confidences[1:] == pytest.approx([0.4, 0.6, 0.8, 1.0])
    published = repository.get_relevant_patterns(
        session_id=None,
        user_id=session.user_id,
        project_id=session.project_id,
        pattern_type=SESSION_OUTCOME_PATTERN,
    )
    assert len(published) == 2
    assert published[0].metadata["pattern_key"] == "regular_complexity_80_memory_600"
    assert published[0].metadata["tags"] == [
        "high-complexity",
        "high-memory",
        "highly-successful",
    ]


def test_failures_flip_pattern_type(repository: PatternRepository) -> None:
    system = PatternLearningSystem(repository=repository, clock=FixedClock(NOW))
    session = WorkSession(id="s1", name="Billing")
    score = _score(40, 100)

    system.learn_from_session(session, score, _result())
    pattern = system.learn_from_session(session, score, _result(ExecutionStatus.FAILURE))
    pattern = system.learn_from_session(session, score, _result(ExecutionStatus.FAILURE))

    assert pattern.frequency == 3
    assert pattern.type is PatternType.FAILURE
    assert pattern.metrics.success_rate == pytest.approx(1 / 3)
    assert pattern.metrics.error_rate == pytest.approx(2 / 3)


def test_recommendations_from_similar_split_patterns(repository: PatternRepository) -> None:
    system = PatternLearningSystem(repository=repository, clock=FixedClock(NOW))
    session = WorkSession(
        id="billing_split_1",
        name="Database",
        metadata={
            "is_split": True,
            "split_total": 3,
            "original_complexity": 90,
            "optimization_applied": ["streaming"],
            "memory_reduction": 30,
        },
    )
    score = _score(74, 559, integrations=75, technical_depth=100)
    for _ in range(5):
        system.learn_from_session(session, score, _result())

    recommendations = system.get_recommendations(score)

    assert [item.strategy for item in recommendations] == [
        "Split into 3 focused sessions",
        "Apply memory optimization techniques",
        "Implement integration caching and connection pooling",
        "Use incremental implementation with validation checkpoints",
    ]
    assert recommendations[0].reasoning[1] == "Average split complexity: 74"
    assert recommendations[1].expected_improvement.memory_reduction == 30
    assert system.get_recommendations(_score(10, 50)) == []


def test_insights_need_enough_confident_patterns(repository: PatternRepository) -> None:
    system = PatternLearningSystem(repository=repository, clock=FixedClock(NOW))
    outcomes = [
        (10, 500, ExecutionStatus.SUCCESS),
        (30, 500, ExecutionStatus.SUCCESS),
        (50, 500, ExecutionStatus.SUCCESS),
        (70, 500, ExecutionStatus.SUCCESS),
        (90, 500, ExecutionStatus.FAILURE),
        (50, 300, ExecutionStatus.SUCCESS),
    ]

    for index, (overall, memory, status) in enumerate(outcomes):
        session = WorkSession(id=f"s{index}", name="Work")
        for _ in range(4):
            pattern = system.learn_from_session(session, _score(overall, memory), _result(status))
        if status is ExecutionStatus.FAILURE:
            assert pattern.confidence == 0.0
        if index < 5:
            assert system.get_insights() == []

    insights = system.get_insights()
    assert [item.type for item in insights] == [InsightType.MEMORY]
    assert insights[0].insight == "High memory sessions (>400MB) have 100% success rate"
    assert insights[0].recommendation == "Current memory handling is effective"
    assert insights[0].based_on == 4

    stats = system.get_pattern_statistics()
    assert stats.total_patterns == 6
    assert stats.high_confidence_patterns == 5
    assert stats.average_success_rate == pytest.approx(0.83)
    assert stats.most_common_failure_complexity == 90
    assert stats.optimization_effectiveness == 0


def test_failure_insight_with_lower_confidence_threshold(repository: PatternRepository) -> None:
    settings = LearningSettings(confidence_threshold=0.3, min_sessions_for_pattern=1)
    system = PatternLearningSystem(repository=repository, settings=settings, clock=FixedClock(NOW))
    session = WorkSession(id="s1", name="Work")

    for status in (ExecutionStatus.SUCCESS, ExecutionStatus.FAILURE, ExecutionStatus.FAILURE):
        pattern = system.learn_from_session(session, _score(90, 100), _result(status))

    assert pattern.type is PatternType.FAILURE
    assert pattern.confidence == pytest.approx(1 / 3)
    insights = system.get_insights()
    assert [item.type for item in insights] == [InsightType.COMPLEXITY]
    assert insights[0].insight == "Sessions with complexity above 90 have higher failure rates"
    assert insights[0].recommendation == (
        "Consider splitting sessions with complexity scores above 72"
    )

def test_cleanup_drops_only_stale_low_confidence_patterns(
    repository: PatternRepository,
) -> None:
    clock = FixedClock(NOW)
    system = PatternLearningSystem(repository=repository, clock=clock)
    session = WorkSession(id="s1", name="Work")
    rare = system.learn_from_session(session, _score(10, 100), _result())
    for _ in range(5):
        frequent = system.learn_from_session(session, _score(50, 300), _result())

    clock.now = NOW + timedelta(days=100)
    removed = system.cleanup_old_patterns()

    assert removed == 1
    assert [pattern.key for pattern in system.get_patterns()] == [frequent.key]
    assert [pattern.key for pattern in repository.list_patterns()] == [frequent.key]
    assert rare.key not in {pattern.key for pattern in repository.list_patterns()}


def test_patterns_survive_reload(repository: PatternRepository) -> None:
    system = PatternLearningSystem(repository=repository, clock=FixedClock(NOW))
    session = WorkSession(id="s1", name="Work", metadata={"is_split": True, "split_total": 2})
    for _ in range(3):
        system.learn_from_session(session, _score(60, 250), _result())

    reloaded = PatternLearningSystem(repository=repository, clock=FixedClock(NOW))

    assert reloaded.load_patterns() == 1
    assert [item.to_payload() for item in reloaded.get_patterns()] == [
        item.to_payload() for item in system.get_patterns()
    ]
    assert repository.delete_pattern(reloaded.get_patterns()[0].key) is True
    assert repository.delete_pattern("missing") is False
