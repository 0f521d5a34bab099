"""Controllers for sessionhub CLI commands."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from sessionhub.config import Settings
from sessionhub.learning.repository import PatternRepository
from sessionhub.learning.system import PatternLearningSystem
from sessionhub.models import WorkRequest, WorkSession
from sessionhub.orchestrator.echo import EchoExecutor
from sessionhub.orchestrator.models import ExecutionOptions
from sessionhub.orchestrator.registry import InMemorySessionRegistry
from sessionhub.persistence.store import SessionPersistence
from sessionhub.planning.complexity import ComplexityAnalyzer
from sessionhub.planning.models import ComplexityScore, WorkflowPlan
from sessionhub.services import SessionCoreService, unit_results


@dataclass(slots=True)
class AnalyzeCommand:
    """CLI inputs for the analyze and plan commands."""

    db_path: Path | None
    text: str
    name: str


@dataclass(slots=True)
class RunCommand:
    """CLI inputs for the run command."""

    db_path: Path | None
    text: str
    name: str
    fail_units: tuple[str, ...]
    continue_on_failure: bool
    pause_between_units_seconds: float


@dataclass(slots=True)
class PatternsCommand:
    """CLI inputs for pattern commands."""

    db_path: Path | None
    text: str = ""
    days: int | None = None


@dataclass(slots=True)
class StoreCommand:
    """CLI inputs for checkpoint and session store commands."""

    data_dir: Path | None
    session_id: str | None = None


class SessionHubCliController:
    """Coordinates sessionhub command execution."""

    def analyze(self, command: AnalyzeCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        _, request = _build_session(command.text, command.name, settings)
        with _repository(settings) as repository:
            analyzer = ComplexityAnalyzer(settings=settings.complexity, pattern_store=repository)
            score = analyzer.analyze_complexity(request)
        return _score_lines(score)

    def plan(self, command: AnalyzeCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        session, _ = _build_session(command.text, command.name, settings)
        with _repository(settings) as repository:
            service = SessionCoreService(
                settings=settings,
                repository=repository,
                executor=EchoExecutor(),
            )
            score, plan = service.plan_session(session)
        lines = _score_lines(score)
        if plan is None:
            lines.append("Plan: single session, no split required.")
            return lines
        return [*lines, *_plan_lines(plan)]

    def run(self, command: RunCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        session, _ = _build_session(command.text, command.name, settings)
        registry = InMemorySessionRegistry()
        options = ExecutionOptions.from_settings(settings.orchestration)
        options.continue_on_failure = command.continue_on_failure
        options.pause_between_units_seconds = command.pause_between_units_seconds
        options.retry_delay_seconds = min(options.retry_delay_seconds, 0.1)
        with _repository(settings) as repository:
            service = SessionCoreService(
                settings=settings,
                repository=repository,
                executor=EchoExecutor(fail_units=command.fail_units),
                registry=registry,
            )
            service.learning.load_patterns()
            report = asyncio.run(service.run_session(session, options))

        workflow = report.workflow
        lines = [
            "Session run finished: "
            f"session_id={report.session_id} workflow_id={workflow.id} "
            f"status={workflow.state.status.value} "
            f"complexity={report.score.overall} split={'yes' if report.plan else 'no'} "
            f"completed={len(workflow.state.completed)} failed={len(workflow.state.failed)} "
            f"progress={workflow.progress.percent_complete:.2f}%",
        ]
        for unit_id, result in unit_results(workflow):
            unit = workflow.unit(unit_id)
            history = ",".join(status.value for status in registry.history(unit_id))
            lines.append(
                f"  unit={unit.name} status={result.status.value} "
                f"deliverables={len(result.deliverables)} registry={history}",
            )
        if report.merged is not None:
            lines.append(f"Summary: {report.merged.summary}")
        if report.error:
            lines.append(f"Error: {report.error}")
        lines.append(f"Learned patterns: {', '.join(report.learned_patterns) or '-'}")
        return lines

    def pattern_stats(self, command: PatternsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            learning = PatternLearningSystem(repository=repository, settings=settings.learning)
            learning.load_patterns()
            stats = learning.get_pattern_statistics()
            patterns = learning.get_patterns()
            insights = learning.get_insights()
            analyzer = ComplexityAnalyzer(settings=settings.complexity, pattern_store=repository)
            analyses = analyzer.get_complexity_statistics(
                user_id=settings.user_context.user_id,
                project_id=settings.user_context.project_id,
            )

        lines = [
            "Pattern statistics: "
            f"total={stats.total_patterns} high_confidence={stats.high_confidence_patterns} "
            f"avg_success_rate={stats.average_success_rate:.2f} "
            f"failure_complexity={stats.most_common_failure_complexity} "
            f"optimization_effectiveness={stats.optimization_effectiveness}%",
            "Complexity analyses: "
            f"total={analyses.total_analyses} avg={analyses.average_complexity:.2f} "
            f"split_rate={analyses.split_rate:.2f} "
            + " ".join(
                f"{risk}={count}" for risk, count in analyses.memory_distribution.items()
            ),
        ]
        for pattern in patterns:
            lines.append(
                f"  {pattern.key} type={pattern.type.value} frequency={pattern.frequency} "
                f"confidence={pattern.confidence:.2f} "
                f"success_rate={pattern.metrics.success_rate:.2f}",
            )
        for insight in insights:
            lines.append(f"  insight[{insight.type.value}] {insight.insight}")
        return lines

    def recommend(self, command: PatternsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        _, request = _build_session(command.text, "recommendation", settings)
        with _repository(settings) as repository:
            learning = PatternLearningSystem(repository=repository, settings=settings.learning)
            learning.load_patterns()
            analyzer = ComplexityAnalyzer(settings=settings.complexity, pattern_store=repository)
            score = analyzer.analyze_complexity(request)
            recommendations = learning.get_recommendations(score)

        if not recommendations:
            return ["No recommendations: not enough similar high-confidence patterns."]
        lines = [f"Recommendations for complexity={score.overall}:"]
        for item in recommendations:
            improvement = item.expected_improvement
            lines.append(
                f"  {item.strategy} (confidence={item.confidence:.2f}, "
                f"memory -{improvement.memory_reduction}%, "
                f"success +{improvement.success_rate_increase}%, "
                f"duration -{improvement.duration_reduction}%)",
            )
            lines.extend(f"    - {reason}" for reason in item.reasoning)
        return lines

    def prune_patterns(self, command: PatternsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            learning = PatternLearningSystem(repository=repository, settings=settings.learning)
            learning.load_patterns()
            removed = learning.cleanup_old_patterns(command.days)
        return [f"Pattern prune completed: removed={removed}"]

    def list_checkpoints(self, command: StoreCommand) -> list[str]:
        persistence = _persistence(command.data_dir)
        if command.session_id is None:
            raise ValueError("Session id is required to list checkpoints.")
        checkpoints = persistence.get_checkpoints(command.session_id)
        if not checkpoints:
            return [f"No checkpoints for session {command.session_id}."]
        return [
            f"{item.id} phase={item.phase} sequence={item.sequence} "
            f"restorable={'yes' if item.can_restore else 'no'} "
            f"created_at={item.timestamp.isoformat()}"
            for item in checkpoints
        ]

    def list_sessions(self, command: StoreCommand) -> list[str]:
        persistence = _persistence(command.data_dir)
        stats = persistence.get_statistics()
        lines = [
            "Session store: "
            f"sessions={stats.total_sessions} checkpoints={stats.total_checkpoints} "
            f"bytes={stats.storage_bytes}",
        ]
        for session_id in persistence.list_sessions():
            persisted = persistence.restore_session(session_id)
            if persisted is None:
                continue
            lines.append(
                f"  {session_id} phase={persisted.metadata.phase} "
                f"progress={persisted.metadata.progress:.2f} "
                f"saved_at={persisted.timestamp.isoformat()}",
            )
        return lines

    def cleanup_sessions(self, command: StoreCommand) -> list[str]:
        persistence = _persistence(command.data_dir)
        removed = persistence.cleanup_old_sessions()
        return [f"Session cleanup completed: removed={removed}"]


def _build_session(
    text: str,
    name: str,
    settings: Settings,
) -> tuple[WorkSession, WorkRequest]:
    session_id = f"session_{uuid4().hex[:12]}"
    request = WorkRequest(
        content=text,
        request_id=str(uuid4()),
        session_id=session_id,
        user_id=settings.user_context.user_id,
        project_id=settings.user_context.project_id,
    )
    session = WorkSession(
        id=session_id,
        name=name,
        user_id=settings.user_context.user_id,
        project_id=settings.user_context.project_id,
        request=request,
    )
    return session, request


def _score_lines(score: ComplexityScore) -> list[str]:
    components = score.components
    lines = [
        "Complexity: "
        f"overall={score.overall} memory={score.estimated_memory_usage}MB "
        f"split={'yes' if score.split_recommended else 'no'}",
        "Components: "
        f"objectives={components.objectives:.1f} integrations={components.integrations:.1f} "
        f"scope={components.scope:.1f} dependencies={components.dependencies:.1f} "
        f"technical_depth={components.technical_depth:.1f} "
        f"memory_requirements={components.memory_requirements:.1f}",
    ]
    recommendation = score.recommendation
    if recommendation is not None:
        lines.append(
            "Recommendation: "
            f"size={recommendation.session_size.value} "
            f"duration={recommendation.estimated_duration}min "
            f"memory_risk={recommendation.memory_risk.value} "
            f"success_probability={recommendation.success_probability:.2f}",
        )
        lines.extend(f"  - {reason}" for reason in recommendation.reasoning)
    for split in score.suggested_splits or []:
        lines.append(
            f"  split {split.order}: {split.title} complexity={split.estimated_complexity} "
            f"objectives={len(split.objectives)}",
        )
    return lines


def _plan_lines(plan: WorkflowPlan) -> list[str]:
    lines = [
        f"Plan: units={len(plan.units)} estimated_duration={plan.estimated_total_duration}min",
    ]
    for unit_id in plan.execution_order:
        unit = plan.unit(unit_id)
        dependencies = ", ".join(plan.unit(item).name for item in unit.dependencies) or "-"
        lines.append(
            f"  [{unit.order}] {unit.name} complexity={unit.estimated_complexity} "
            f"depends_on={dependencies}",
        )
    lines.extend(f"  note: {note}" for note in plan.optimization_notes)
    return lines


def _persistence(data_dir: Path | None) -> SessionPersistence:
    settings = Settings.from_env()
    return SessionPersistence(
        data_dir or settings.persistence.data_dir,
        max_checkpoints_per_session=settings.persistence.max_checkpoints_per_session,
        retention_days=settings.persistence.session_retention_days,
    )


@contextmanager
def _repository(settings: Settings) -> Iterator[PatternRepository]:
    repository = PatternRepository(
        settings.db_path,
        busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    try:
        repository.init_schema()
        yield repository
    finally:
        repository.close()
