"""Turn a scored session into a dependency-ordered plan of split units."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import asdict, dataclass, replace
from uuid import uuid4

from sessionhub.models import (
    ExecutionMetrics,
    ExecutionResult,
    ExecutionStatus,
    WorkRequest,
    WorkSession,
)
from sessionhub.planning.complexity import round_half_up
from sessionhub.planning.graph import dependency_levels, stable_topological_order
from sessionhub.planning.models import (
    ComplexityScore,
    SplitOptions,
    SplitUnit,
    SuggestedSplit,
    WorkflowPlan,
)
from sessionhub.planning.objectives import parse_action_objectives

logger = logging.getLogger(__name__)

DEFAULT_SPLIT_COMPLEXITY_DIVISOR = 40
GROUP_COMPLEXITY_PER_OBJECTIVE = 10
ORIGINAL_CONTEXT_PREVIEW_CHARS = 200
DESCRIPTION_PREVIEW_CHARS = 100

GENERAL_THEME = "General"
THEME_KEYWORDS: dict[str, tuple[str, ...]] = {
    "UI/Frontend": ("ui", "component", "interface", "frontend", "design"),
    "Backend/API": ("api", "backend", "endpoint", "service", "server"),
    "Database": ("database", "schema", "migration", "query", "data"),
    "Testing": ("test", "testing", "validation", "quality"),
    "Configuration": ("config", "setting", "environment", "setup"),
    "Documentation": ("document", "readme", "guide", "docs"),
}
THEME_DEPENDENCIES: dict[str, tuple[str, ...]] = {
    "UI/Frontend": ("Backend/API",),
    "Backend/API": ("Database",),
    "Database": (),
    "Testing": ("UI/Frontend", "Backend/API"),
    "Configuration": (),
    "Documentation": ("UI/Frontend", "Backend/API", "Database"),
    GENERAL_THEME: (),
}

PARALLEL_NOTE = "Parallel execution enabled - units with the same order level can run concurrently"
SEQUENTIAL_NOTE = "Sequential execution - units run one after another"
GROUPING_NOTE = "Logical grouping preserved - related objectives kept together"
CONSERVATIVE_NOTE = "Conservative complexity limits applied for reliability"


@dataclass(slots=True)
class MergedSplitResult:
    """Parent-level view of the results of all split units."""

    result: ExecutionResult
    summary: str
    all_objectives_completed: bool


class SplittingEngine:
    """Decompose a session into a WorkflowPlan.

    Stages, each optional per ``SplitOptions``: rebalance oversized splits,
    regroup objectives by theme, assign parallel levels, and sort by
    dependencies. Any stage that cannot order the splits raises
    ``CyclicDependencyError``.
    """

    def __init__(self, *, default_options: SplitOptions | None = None) -> None:
        self.default_options = default_options or SplitOptions()

    def split_session(
        self,
        session: WorkSession,
        score: ComplexityScore,
        options: SplitOptions | None = None,
    ) -> WorkflowPlan:
        opts = options or self.default_options
        logger.info(
            "Splitting session %s (complexity=%d, memory=%dMB)",
            session.id,
            score.overall,
            score.estimated_memory_usage,
        )
        splits = (
            [replace(split, objectives=list(split.objectives)) for split in score.suggested_splits]
            if score.suggested_splits
            else self.generate_default_splits(session, score)
        )
        splits = self.optimize_splits(
            splits,
            opts,
            total_memory_mb=score.estimated_memory_usage,
        )
        units = self._create_units(session, splits, score, opts)
        plan = self._build_plan(session.id, units, opts)
        logger.info(
            "Session %s split into %d unit(s), estimated %d minutes",
            session.id,
            len(units),
            plan.estimated_total_duration,
        )
        return plan

    def generate_default_splits(
        self,
        session: WorkSession,
        score: ComplexityScore,
    ) -> list[SuggestedSplit]:
        """Even chunks of the request's action objectives, chained sequentially."""

        if session.request is None:
            raise ValueError(f"Session {session.id} must have a request to generate splits")
        content = session.request.content.strip()
        objectives = parse_action_objectives(content)
        target = max(1, math.ceil(score.overall / DEFAULT_SPLIT_COMPLEXITY_DIVISOR))
        if not objectives:
            return [
                SuggestedSplit(
                    title=f"{session.name} - Part 1",
                    objectives=[content] if content else [],
                    estimated_complexity=score.overall,
                    dependencies=[],
                    order=1,
                ),
            ]
        per_split = math.ceil(len(objectives) / target)
        chunks = [
            objectives[start : start + per_split]
            for start in range(0, len(objectives), per_split)
        ]
        complexity = round_half_up(score.overall / target)
        return [
            SuggestedSplit(
                title=f"{session.name} - Part {index + 1}",
                objectives=chunk,
                estimated_complexity=complexity,
                dependencies=[f"{session.name} - Part {index}"] if index > 0 else [],
                order=index + 1,
            )
            for index, chunk in enumerate(chunks)
        ]

    def optimize_splits(
        self,
        splits: list[SuggestedSplit],
        options: SplitOptions,
        *,
        total_memory_mb: int = 0,
    ) -> list[SuggestedSplit]:
        _ensure_unique_titles(splits)
        optimized = _drop_unknown_dependencies(splits)
        if options.max_complexity_per_split:
            optimized = rebalance_by_complexity(
                optimized,
                max_complexity=options.max_complexity_per_split,
                max_memory_mb=options.max_memory_per_split,
                total_memory_mb=total_memory_mb,
            )
        if options.preserve_logical_grouping:
            optimized = group_by_theme(optimized)
            if options.max_complexity_per_split:
                optimized = rebalance_by_complexity(
                    optimized,
                    max_complexity=options.max_complexity_per_split,
                    max_memory_mb=options.max_memory_per_split,
                    total_memory_mb=total_memory_mb,
                )
        if options.enable_parallel_execution:
            optimized = assign_parallel_levels(optimized)
        if options.prioritize_by_dependency:
            optimized = sort_by_dependency_order(optimized)
        return optimized

    def merge_split_results(
        self,
        parent_id: str,
        results: Sequence[ExecutionResult],
    ) -> MergedSplitResult:
        """Aggregate the results of every split unit into one parent result."""

        deliverables: list[str] = []
        logs: list[str] = []
        errors: list[str] = []
        metrics = ExecutionMetrics()
        for result in results:
            deliverables.extend(result.deliverables)
            logs.extend(result.logs)
            errors.extend(result.errors)
            metrics.duration_seconds += result.metrics.duration_seconds
            metrics.tasks_completed += result.metrics.tasks_completed
            metrics.tasks_failed += result.metrics.tasks_failed

        completed = (
            bool(results)
            and metrics.tasks_failed == 0
            and all(result.succeeded for result in results)
        )
        merged = ExecutionResult(
            session_id=parent_id,
            status=ExecutionStatus.SUCCESS if completed else ExecutionStatus.PARTIAL,
            deliverables=deliverables,
            logs=logs,
            errors=errors,
            metrics=metrics,
            outputs={"splits_completed": sum(1 for result in results if result.succeeded)},
        )
        summary = (
            f"Completed {len(results)} split sessions. "
            f"Total tasks: {metrics.tasks_completed + metrics.tasks_failed} "
            f"({metrics.tasks_completed} completed, {metrics.tasks_failed} failed). "
            f"Total duration: {round(metrics.duration_seconds / 60)} minutes."
        )
        return MergedSplitResult(
            result=merged,
            summary=summary,
            all_objectives_completed=completed,
        )

    def _create_units(
        self,
        session: WorkSession,
        splits: list[SuggestedSplit],
        score: ComplexityScore,
        options: SplitOptions,
    ) -> list[SplitUnit]:
        total = len(splits)
        ids = {
            split.title: f"{session.id}_split_{index + 1}_{uuid4().hex[:8]}"
            for index, split in enumerate(splits)
        }
        parent_request = session.request
        parent_context = dict(parent_request.context) if parent_request is not None else {}
        units: list[SplitUnit] = []
        for index, split in enumerate(splits):
            unit_id = ids[split.title]
            request = WorkRequest(
                content=build_split_request_content(
                    split,
                    parent_request.content if parent_request is not None else "",
                ),
                context={
                    **parent_context,
                    "is_split_session": True,
                    "split_index": index + 1,
                    "split_total": total,
                    "parent_session_id": session.id,
                },
                request_id=(
                    f"{parent_request.request_id}_split_{index + 1}"
                    if parent_request is not None and parent_request.request_id
                    else f"{session.id}_request_split_{index + 1}"
                ),
                session_id=unit_id,
                user_id=session.user_id,
                project_id=session.project_id,
            )
            units.append(
                SplitUnit(
                    id=unit_id,
                    parent_id=session.id,
                    name=split.title,
                    description=(
                        f"Split {index + 1} of {total}: "
                        f"{', '.join(split.objectives)[:DESCRIPTION_PREVIEW_CHARS]}..."
                    ),
                    index=index + 1,
                    total=total,
                    dependencies=[ids[title] for title in split.dependencies if title in ids],
                    estimated_complexity=split.estimated_complexity,
                    focus_area=split.title,
                    objectives=list(split.objectives),
                    order=split.order,
                    context=build_context_carry_over(parent_context, split, index),
                    request=request,
                    metadata={
                        **session.metadata,
                        "is_split": True,
                        "parent_session_id": session.id,
                        "split_configuration": asdict(options),
                        "original_complexity": score.overall,
                        "split_total": total,
                    },
                ),
            )
        return units

    def _build_plan(
        self,
        parent_id: str,
        units: list[SplitUnit],
        options: SplitOptions,
    ) -> WorkflowPlan:
        dependencies = {unit.id: list(unit.dependencies) for unit in units}
        unit_ids = [unit.id for unit in units]
        notes: list[str] = []
        if options.enable_parallel_execution:
            order = [
                unit_id
                for level in dependency_levels(unit_ids, dependencies)
                for unit_id in level
            ]
            notes.append(PARALLEL_NOTE)
        else:
            order = stable_topological_order(unit_ids, dependencies)
            notes.append(SEQUENTIAL_NOTE)
        if options.preserve_logical_grouping:
            notes.append(GROUPING_NOTE)
        if options.max_complexity_per_split < DEFAULT_SPLIT_COMPLEXITY_DIVISOR:
            notes.append(CONSERVATIVE_NOTE)
        duration = sum(unit.estimated_complexity * 0.5 + 10 for unit in units)
        return WorkflowPlan(
            parent_id=parent_id,
            units=units,
            execution_order=order,
            dependencies=dependencies,
            estimated_total_duration=round_half_up(duration),
            optimization_notes=notes,
        )


def rebalance_by_complexity(
    splits: list[SuggestedSplit],
    *,
    max_complexity: int,
    max_memory_mb: int = 0,
    total_memory_mb: int = 0,
) -> list[SuggestedSplit]:
    """Subdivide splits that exceed the complexity or memory budget.

    A split's memory share is the total estimate weighted by its complexity.
    Parts of a subdivided split keep its dependencies; splits that depended
    on it depend on every part instead.
    """

    total_complexity = sum(split.estimated_complexity for split in splits)
    rebalanced: list[SuggestedSplit] = []
    replacements: dict[str, list[str]] = {}
    for split in splits:
        parts_needed = math.ceil(split.estimated_complexity / max_complexity)
        if max_memory_mb and total_memory_mb and total_complexity:
            memory_share = total_memory_mb * split.estimated_complexity / total_complexity
            parts_needed = max(parts_needed, math.ceil(memory_share / max_memory_mb))
        if parts_needed <= 1 or len(split.objectives) <= 1:
            rebalanced.append(split)
            continue
        per_part = math.ceil(len(split.objectives) / parts_needed)
        chunks = [
            split.objectives[start : start + per_part]
            for start in range(0, len(split.objectives), per_part)
        ]
        titles = [f"{split.title} ({index + 1}/{len(chunks)})" for index in range(len(chunks))]
        replacements[split.title] = titles
        for title, chunk in zip(titles, chunks, strict=True):
            rebalanced.append(
                SuggestedSplit(
                    title=title,
                    objectives=chunk,
                    estimated_complexity=round_half_up(split.estimated_complexity / len(chunks)),
                    dependencies=list(split.dependencies),
                    order=split.order,
                ),
            )
        logger.debug("Rebalanced split %r into %d part(s)", split.title, len(chunks))

    if not replacements:
        return rebalanced
    return [
        replace(
            split,
            dependencies=[
                title
                for dependency in split.dependencies
                for title in replacements.get(dependency, [dependency])
            ],
        )
        for split in rebalanced
    ]


def group_by_theme(splits: list[SuggestedSplit]) -> list[SuggestedSplit]:
    """Reassign all objectives to theme groups with the fixed theme dependency table."""

    objectives = [objective for split in splits for objective in split.objectives]
    if not objectives:
        return splits
    groups: dict[str, list[str]] = {}
    for objective in objectives:
        groups.setdefault(classify_theme(objective), []).append(objective)
    return [
        SuggestedSplit(
            title=theme,
            objectives=items,
            estimated_complexity=len(items) * GROUP_COMPLEXITY_PER_OBJECTIVE,
            dependencies=[
                dependency for dependency in THEME_DEPENDENCIES[theme] if dependency in groups
            ],
            order=index + 1,
        )
        for index, (theme, items) in enumerate(groups.items())
    ]


def classify_theme(objective: str) -> str:
    """First theme with a keyword starting a word in ``objective``, else General."""

    lowered = objective.lower()
    for theme, keywords in THEME_KEYWORDS.items():
        if any(re.search(rf"\b{re.escape(keyword)}", lowered) for keyword in keywords):
            return theme
    return GENERAL_THEME


def assign_parallel_levels(splits: list[SuggestedSplit]) -> list[SuggestedSplit]:
    """Set ``order`` to the dependency level; same level means no mutual dependencies."""

    by_title = {split.title: split for split in splits}
    levels = dependency_levels(
        [split.title for split in splits],
        {split.title: split.dependencies for split in splits},
    )
    leveled: list[SuggestedSplit] = []
    for level_index, titles in enumerate(levels):
        for title in titles:
            leveled.append(replace(by_title[title], order=level_index + 1))
    return leveled


def sort_by_dependency_order(splits: list[SuggestedSplit]) -> list[SuggestedSplit]:
    by_title = {split.title: split for split in splits}
    ordered = stable_topological_order(
        [split.title for split in splits],
        {split.title: split.dependencies for split in splits},
    )
    return [by_title[title] for title in ordered]


def build_context_carry_over(
    parent_context: dict[str, object],
    split: SuggestedSplit,
    index: int,
) -> dict[str, object]:
    context: dict[str, object] = {
        "parent_context": dict(parent_context),
        "split_index": index + 1,
        "focus_area": split.title,
        "previous_splits": index,
    }
    if "Database" in split.title:
        context["schema_context"] = True
    elif "API" in split.title:
        context["api_context"] = True
    elif "UI" in split.title:
        context["ui_context"] = True
    return context


def build_split_request_content(split: SuggestedSplit, original_content: str) -> str:
    objectives = "\n".join(
        f"{index + 1}. {objective}" for index, objective in enumerate(split.objectives)
    )
    return (
        f"[Split Session - {split.title}]\n\n"
        f"Objectives for this session:\n{objectives}\n\n"
        f"Original Request Context:\n{original_content[:ORIGINAL_CONTEXT_PREVIEW_CHARS]}...\n\n"
        f"Focus: This session specifically handles {split.title.lower()} aspects "
        "of the original request."
    )


def _ensure_unique_titles(splits: list[SuggestedSplit]) -> None:
    seen: set[str] = set()
    for split in splits:
        if split.title in seen:
            raise ValueError(f"Duplicate split title: {split.title!r}")
        seen.add(split.title)


def _drop_unknown_dependencies(splits: list[SuggestedSplit]) -> list[SuggestedSplit]:
    titles = {split.title for split in splits}
    return [
        replace(
            split,
            dependencies=[dependency for dependency in split.dependencies if dependency in titles],
        )
        for split in splits
    ]
