from __future__ import annotations

import allure
import pytest

from sessionhub.models import (
    ExecutionMetrics,
    ExecutionResult,
    ExecutionStatus,
    WorkRequest,
    WorkSession,
)
from sessionhub.planning.complexity import ComplexityAnalyzer
from sessionhub.planning.graph import CyclicDependencyError, is_topological
from sessionhub.planning.models import (
    ComplexityComponents,
    ComplexityScore,
    SplitOptions,
    SuggestedSplit,
)
from sessionhub.planning.splitting import (
    CONSERVATIVE_NOTE,
    GROUPING_NOTE,
    PARALLEL_NOTE,
    SEQUENTIAL_NOTE,
    SplittingEngine,
    assign_parallel_levels,
    classify_theme,
    group_by_theme,
    rebalance_by_complexity,
    sort_by_dependency_order,
)

pytestmark = [
    allure.epic("Session Planning"),
    allure.feature("Session Splitting"),
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


def _billing_session() -> WorkSession:
    request = WorkRequest(
        content=BILLING_REQUEST,
        context={"repo": "billing"},
        request_id="req-1",
        session_id="billing",
    )
    return WorkSession(id="billing", name="Billing", request=request, metadata={"team": "core"})


def _split(title: str, objectives: list[str], complexity: int, deps=None) -> SuggestedSplit:
    return SuggestedSplit(
        title=title,
        objectives=objectives,
        estimated_complexity=complexity,
        dependencies=list(deps or []),
    )


def test_split_session_regroups_by_theme_in_dependency_order() -> None:
    session = _billing_session()
    score = ComplexityAnalyzer().analyze_complexity(session.request)

    plan = SplittingEngine().split_session(session, score)

    names = [plan.unit(unit_id).name for unit_id in plan.execution_order]
    assert names == ["General", "Database", "Backend/API", "UI/Frontend", "Testing"]
    assert is_topological(plan.execution_order, plan.dependencies)
    assert plan.estimated_total_duration == 80
    assert plan.optimization_notes == [SEQUENTIAL_NOTE, GROUPING_NOTE]

    by_name = {unit.name: unit for unit in plan.units}
    assert by_name["UI/Frontend"].dependencies == [by_name["Backend/API"].id]
    assert sorted(by_name["Testing"].dependencies) == sorted(
        [by_name["UI/Frontend"].id, by_name["Backend/API"].id],
    )
    assert by_name["General"].objectives == [
        "Refactor the architecture of the billing framework",
        "Rework the plugin pattern and framework for the new architecture",
    ]


def test_split_units_carry_parent_context_and_metadata() -> None:
    session = _billing_session()
    score = ComplexityAnalyzer().analyze_complexity(session.request)

    plan = SplittingEngine().split_session(session, score)
    database = next(unit for unit in plan.units if unit.name == "Database")

    assert database.parent_id == "billing"
    assert database.total == 5
    assert database.id.startswith("billing_split_2_")
    assert database.request.session_id == database.id
    assert database.request.request_id == "req-1_split_2"
    assert database.request.context["is_split_session"] is True
    assert database.request.context["parent_session_id"] == "billing"
    assert database.request.context["repo"] == "billing"
    assert database.request.content.startswith("[Split Session - Database]")
    assert "1. Add database schema migration for invoices" in database.request.content
    assert database.context["schema_context"] is True
    assert database.context["parent_context"] == {"repo": "billing"}
    assert database.metadata["is_split"] is True
    assert database.metadata["original_complexity"] == score.overall
    assert database.metadata["team"] == "core"
    assert database.metadata["split_configuration"]["max_complexity_per_split"] == 40


def test_parallel_plan_orders_units_by_level() -> None:
    session = _billing_session()
    score = ComplexityAnalyzer().analyze_complexity(session.request)

    plan = SplittingEngine().split_session(
        session,
        score,
        SplitOptions(enable_parallel_execution=True, max_complexity_per_split=30),
    )

    by_id = {unit.id: unit for unit in plan.units}
    assert [by_id[unit_id].order for unit_id in plan.execution_order] == [1, 1, 2, 3, 4]
    assert plan.optimization_notes == [PARALLEL_NOTE, GROUPING_NOTE, CONSERVATIVE_NOTE]
    assert is_topological(plan.execution_order, plan.dependencies)


def test_default_splits_chunk_action_sentences() -> None:
    request = WorkRequest(
        content="Create the login form. Add password reset. Fix the broken link! short.",
    )
    session = WorkSession(id="auth", name="Auth", request=request)
    score = ComplexityScore(
        overall=100,
        components=ComplexityComponents(),
        estimated_memory_usage=100,
        split_recommended=True,
    )

    splits = SplittingEngine().generate_default_splits(session, score)

    assert [split.title for split in splits] == ["Auth - Part 1", "Auth - Part 2", "Auth - Part 3"]
    assert [split.objectives for split in splits] == [
        ["Create the login form"],
        ["Add password reset"],
        ["Fix the broken link"],
    ]
    assert all(split.estimated_complexity == 33 for split in splits)
    assert splits[2].dependencies == ["Auth - Part 2"]


def test_default_splits_require_request() -> None:
    score = ComplexityScore(
        overall=90,
        components=ComplexityComponents(),
        estimated_memory_usage=100,
        split_recommended=True,
    )

    with pytest.raises(ValueError, match="must have a request"):
        SplittingEngine().generate_default_splits(WorkSession(id="x", name="X"), score)


def test_rebalance_subdivides_oversized_split_and_rewires_dependents() -> None:
    splits = [
        _split("Core", ["a", "b", "c", "d"], 80),
        _split("Docs", ["readme"], 10, deps=["Core"]),
    ]

    rebalanced = rebalance_by_complexity(splits, max_complexity=40)

    assert [split.title for split in rebalanced] == ["Core (1/2)", "Core (2/2)", "Docs"]
    assert rebalanced[0].objectives == ["a", "b"]
    assert rebalanced[0].estimated_complexity == 40
    assert rebalanced[2].dependencies == ["Core (1/2)", "Core (2/2)"]


def test_rebalance_respects_memory_budget() -> None:
    splits = [_split("Core", ["a", "b", "c", "d"], 20)]

    rebalanced = rebalance_by_complexity(
        splits,
        max_complexity=40,
        max_memory_mb=300,
        total_memory_mb=900,
    )

    assert [split.title for split in rebalanced] == ["Core (1/2)", "Core (2/2)"]
    assert all(split.estimated_complexity == 10 for split in rebalanced)


def test_single_objective_split_is_never_subdivided() -> None:
    splits = [_split("Core", ["only"], 95)]

    assert rebalance_by_complexity(splits, max_complexity=40) == splits


def test_group_by_theme_uses_fixed_theme_dependencies() -> None:
    grouped = group_by_theme(
        [
            _split(
                "Mixed",
                ["Write tests for login", "Build the login ui", "Expose login api"],
                50,
            ),
        ],
    )

    by_title = {split.title: split for split in grouped}
    assert list(by_title) == ["Testing", "UI/Frontend", "Backend/API"]
    assert by_title["UI/Frontend"].dependencies == ["Backend/API"]
    assert by_title["Testing"].dependencies == ["UI/Frontend", "Backend/API"]
    assert by_title["Backend/API"].estimated_complexity == 10


def test_classify_theme_falls_back_to_general() -> None:
    assert classify_theme("Add migration for orders") == "Database"
    assert classify_theme("Update the setup guide") == "Configuration"
    assert classify_theme("Rename variables") == "General"


def test_assign_parallel_levels_groups_independent_splits() -> None:
    leveled = assign_parallel_levels(
        [
            _split("C", ["c"], 10, deps=["A", "B"]),
            _split("A", ["a"], 10),
            _split("B", ["b"], 10),
        ],
    )

    assert [(split.title, split.order) for split in leveled] == [("A", 1), ("B", 1), ("C", 2)]


def test_sort_by_dependency_order_rejects_cycles() -> None:
    with pytest.raises(CyclicDependencyError, match="Circular dependency"):
        sort_by_dependency_order(
            [_split("A", ["a"], 10, deps=["B"]), _split("B", ["b"], 10, deps=["A"])],
        )


def test_duplicate_split_titles_are_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate split title"):
        SplittingEngine().optimize_splits(
            [_split("A", ["a"], 10), _split("A", ["b"], 10)],
            SplitOptions(),
        )


def test_merge_split_results_aggregates_metrics() -> None:
    results = [
        ExecutionResult(
            session_id=f"part-{index}",
            status=ExecutionStatus.SUCCESS,
            deliverables=[f"d{index}"],
            metrics=ExecutionMetrics(duration_seconds=60.0, tasks_completed=1),
        )
        for index in range(2)
    ]

    merged = SplittingEngine().merge_split_results("parent", results)

    assert merged.all_objectives_completed is True
    assert merged.result.status is ExecutionStatus.SUCCESS
    assert merged.result.deliverables == ["d0", "d1"]
    assert merged.result.outputs == {"splits_completed": 2}
    assert merged.summary == (
        "Completed 2 split sessions. Total tasks: 2 (2 completed, 0 failed). "
        "Total duration: 2 minutes."
    )


def test_merge_with_failed_part_is_partial() -> None:
    results = [
        ExecutionResult(session_id="ok", status=ExecutionStatus.SUCCESS),
        ExecutionResult(
            session_id="bad",
            status=ExecutionStatus.FAILURE,
            errors=["boom"],
            metrics=ExecutionMetrics(tasks_failed=1),
        ),
    ]

    merged = SplittingEngine().merge_split_results("parent", results)

    assert merged.all_objectives_completed is False
    assert merged.result.status is ExecutionStatus.PARTIAL
    assert merged.result.errors == ["boom"]
    assert SplittingEngine().merge_split_results("parent", []).all_objectives_completed is False
