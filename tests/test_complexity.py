from __future__ import annotations

import allure

from sessionhub.config import ComplexitySettings
from sessionhub.learning.models import SESSION_COMPLEXITY_PATTERN, PatternObservation
from sessionhub.learning.repository import PatternRepository
from sessionhub.models import WorkRequest
from sessionhub.planning.complexity import (
    ComplexityAnalyzer,
    count_keywords,
    estimate_memory_usage,
    extract_factors,
    generate_split_suggestions,
    round_half_up,
)
from sessionhub.planning.models import MemoryRisk, SessionSize

pytestmark = [
    allure.epic("Session Planning"),
    allure.feature("Complexity Analysis"),
]

BILLING_REQUEST = "\n".join(
    [
        "1. Refactor the architecture of the billing framework",
        "2. Add database schema migration for invoices",
        "3. Integrate the payment api and webhook endpoint",
        "4. Build ui component for the invoice page",
        "5. Write unit test coverage for the overhaul",
        "6. Rework the plugin pattern and framework for the new architecture",
    ],
)


def test_count_keywords_matches_word_prefixes_case_insensitively() -> None:
    assert count_keywords("API and api-first APIs", ("api",)) == 3
    assert count_keywords("rapid capital", ("api",)) == 0
    assert count_keywords("Unit Test the unit tests", ("unit test",)) == 2


def test_extract_factors_counts_each_dimension() -> None:
    factors = extract_factors(WorkRequest(content=BILLING_REQUEST))

    assert factors.architectural_changes == 7
    assert factors.api_integrations == 3
    assert factors.database_changes == 3
    assert factors.ui_components == 3
    assert factors.testing_requirements == 3
    assert factors.file_operations == 0
    assert factors.cross_module_impact == 0
    assert estimate_memory_usage(factors) == 559


def test_cross_module_impact_uses_broad_keywords_and_modules_context() -> None:
    request = WorkRequest(
        content="Rename the logger across all services and everywhere else",
        context={"modules": ["api", "worker"]},
    )

    assert extract_factors(request).cross_module_impact == 8


def test_simple_request_is_small_and_not_split() -> None:
    score = ComplexityAnalyzer().analyze_complexity(WorkRequest(content="Fix typo in footer"))

    assert score.overall <= 1
    assert score.estimated_memory_usage == 50
    assert score.split_recommended is False
    assert score.suggested_splits is None
    assert score.recommendation is not None
    assert score.recommendation.session_size is SessionSize.SMALL
    assert score.recommendation.memory_risk is MemoryRisk.LOW
    assert score.recommendation.success_probability == 0.95
    assert score.recommendation.estimated_duration == 13


def test_memory_estimate_above_threshold_forces_split() -> None:
    score = ComplexityAnalyzer().analyze_complexity(WorkRequest(content=BILLING_REQUEST))

    assert score.estimated_memory_usage == 559
    assert score.overall == 74
    assert score.split_recommended is True
    assert score.recommendation is not None
    assert score.recommendation.session_size is SessionSize.SPLIT_REQUIRED
    assert score.recommendation.memory_risk is MemoryRisk.HIGH
    assert score.recommendation.success_probability == 0.72
    assert score.recommendation.estimated_duration == 75
    for value in score.components.to_dict().values():
        assert 0 <= value <= 100


def test_components_are_clamped_and_overall_is_weighted() -> None:
    score = ComplexityAnalyzer().analyze_complexity(WorkRequest(content=BILLING_REQUEST))
    components = score.components

    assert components.objectives == 15
    assert components.integrations == 75
    assert components.scope == 100
    assert components.dependencies == 72
    assert components.technical_depth == 100
    assert components.memory_requirements == 100


def test_overall_above_large_threshold_forces_split() -> None:
    analyzer = ComplexityAnalyzer(
        settings=ComplexitySettings(
            small_threshold=10,
            medium_threshold=20,
            large_threshold=30,
            memory_threshold_mb=10_000,
        ),
    )

    score = analyzer.analyze_complexity(WorkRequest(content=BILLING_REQUEST))

    assert score.split_recommended is True
    assert score.recommendation is not None
    assert score.recommendation.session_size is SessionSize.SPLIT_REQUIRED


def test_split_suggestions_group_objectives_by_theme() -> None:
    splits = generate_split_suggestions(BILLING_REQUEST)

    assert [split.title for split in splits] == [
        "Architecture and Structure Changes",
        "Database and Data Model Updates",
        "API and Integration Implementation",
        "UI Components and Frontend",
        "Testing and Quality Assurance",
    ]
    assert splits[0].objectives == [
        "Refactor the architecture of the billing framework",
        "Rework the plugin pattern and framework for the new architecture",
    ]
    assert splits[0].estimated_complexity == 40
    assert splits[1].dependencies == ["Architecture and Structure Changes"]
    assert splits[4].dependencies == [split.title for split in splits[:4]]
    assert [split.order for split in splits] == [1, 2, 3, 4, 5]


def test_unmatched_objectives_form_general_implementation_split() -> None:
    splits = generate_split_suggestions(
        "- Add database schema for orders\n- Rename the CLI flags\n- Polish error messages",
    )

    assert [split.title for split in splits] == [
        "Database and Data Model Updates",
        "General Implementation",
    ]
    assert splits[1].objectives == ["Rename the CLI flags", "Polish error messages"]
    assert splits[1].dependencies == ["Database and Data Model Updates"]


def test_objectives_without_theme_are_chunked_into_phases() -> None:
    splits = generate_split_suggestions(
        "- Rename flags\n- Polish messages\n- Tidy logs\n- Sort imports",
    )

    assert [split.title for split in splits] == [
        "Implementation Phase 1",
        "Implementation Phase 2",
    ]
    assert splits[0].objectives == ["Rename flags", "Polish messages"]
    assert splits[1].dependencies == ["Implementation Phase 1"]
    assert all(split.estimated_complexity == 35 for split in splits)


def test_request_without_objectives_becomes_single_phase() -> None:
    splits = generate_split_suggestions("short")

    assert len(splits) == 1
    assert splits[0].objectives == ["short"]


def test_historical_prior_scales_factors(repository: PatternRepository) -> None:
    request = WorkRequest(content="Add api endpoint", request_id="r1", session_id="s1")
    baseline = ComplexityAnalyzer().analyze_complexity(request)
    for _ in range(3):
        repository.record_pattern(
            PatternObservation(
                pattern_type=SESSION_COMPLEXITY_PATTERN,
                pattern="heavy",
                complexity=90.0,
            ),
        )

    boosted = ComplexityAnalyzer(pattern_store=repository).analyze_complexity(request)

    assert baseline.estimated_memory_usage == 90
    assert boosted.estimated_memory_usage == 98
    assert repository.count_observations() == 4


def test_complexity_statistics_aggregate_recorded_analyses(
    repository: PatternRepository,
) -> None:
    analyzer = ComplexityAnalyzer(pattern_store=repository)
    analyzer.analyze_complexity(WorkRequest(content="Fix typo in footer"))
    analyzer.analyze_complexity(WorkRequest(content=BILLING_REQUEST))

    stats = analyzer.get_complexity_statistics(
        user_id="default_user",
        project_id="default_project",
    )

    assert stats.total_analyses == 2
    assert stats.split_rate == 0.5
    assert stats.memory_distribution == {"low": 1, "medium": 0, "high": 1}


def test_statistics_without_store_are_empty() -> None:
    stats = ComplexityAnalyzer().get_complexity_statistics(
        user_id="default_user",
        project_id="default_project",
    )

    assert stats.total_analyses == 0
    assert stats.memory_distribution == {"low": 0, "medium": 0, "high": 0}


def test_round_half_up() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.49) == 2
