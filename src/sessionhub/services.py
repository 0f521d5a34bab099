"""Service facade wiring analysis, splitting, orchestration and learning."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from sessionhub.config import Settings
from sessionhub.learning.repository import PatternRepository
from sessionhub.learning.system import PatternLearningSystem
from sessionhub.models import ExecutionResult, WorkSession
from sessionhub.orchestrator.events import WorkflowEvent, WorkflowNotification
from sessionhub.orchestrator.executor import SessionRegistry, UnitExecutor
from sessionhub.orchestrator.framework import OrchestrationFramework
from sessionhub.orchestrator.models import ExecutionOptions, UnitSpec, Workflow
from sessionhub.persistence.autosave import AutoSaveService
from sessionhub.persistence.change_detection import ChangeDetector
from sessionhub.persistence.models import SessionMetadata
from sessionhub.persistence.store import SessionPersistence
from sessionhub.planning.complexity import ComplexityAnalyzer
from sessionhub.planning.models import ComplexityScore, SplitOptions, WorkflowPlan
from sessionhub.planning.splitting import MergedSplitResult, SplittingEngine
from sessionhub.recovery.service import RecoveryService

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class SessionRunReport:
    """Everything produced by one end-to-end session run."""

    session_id: str
    score: ComplexityScore
    workflow: Workflow
    plan: WorkflowPlan | None = None
    merged: MergedSplitResult | None = None
    learned_patterns: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.workflow.state.failed


class SessionCoreService:
    """Run a work session through analysis, optional splitting and execution.

    The auto-save loop runs for the duration of each run and tracks every
    unit; every unit outcome is fed to the pattern learning system afterwards.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        repository: PatternRepository,
        executor: UnitExecutor,
        registry: SessionRegistry | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.repository = repository
        self.persistence = SessionPersistence(
            settings.persistence.data_dir,
            max_checkpoints_per_session=settings.persistence.max_checkpoints_per_session,
            retention_days=settings.persistence.session_retention_days,
        )
        self.change_detector = ChangeDetector(max_snapshots=settings.autosave.max_snapshots)
        self.autosave = AutoSaveService(
            persistence=self.persistence,
            change_detector=self.change_detector,
            interval_seconds=settings.autosave.interval_seconds,
            enabled=settings.autosave.enabled,
            checkpoint_on_save=settings.autosave.checkpoint_on_save,
        )
        self.analyzer = ComplexityAnalyzer(settings=settings.complexity, pattern_store=repository)
        self.splitter = SplittingEngine(
            default_options=SplitOptions.from_settings(settings.splitting),
        )
        self.recovery = RecoveryService(
            persistence=self.persistence,
            settings=settings.recovery,
            sleep=sleep,
        )
        self.orchestrator = OrchestrationFramework(
            executor=executor,
            registry=registry,
            persistence=self.persistence,
            recovery=self.recovery,
            settings=settings.orchestration,
            sleep=sleep,
        )
        self.learning = PatternLearningSystem(repository=repository, settings=settings.learning)
        self.orchestrator.subscribe(self._track_unit)
        self._active_runs = 0

    def plan_session(self, session: WorkSession) -> tuple[ComplexityScore, WorkflowPlan | None]:
        """Score the session's request and split it when recommended."""

        if session.request is None:
            raise ValueError(f"Session {session.id} has no request to analyze.")
        score = self.analyzer.analyze_complexity(session.request)
        if not score.split_recommended:
            return score, None
        return score, self.splitter.split_session(session, score)

    async def run_session(
        self,
        session: WorkSession,
        options: ExecutionOptions | None = None,
    ) -> SessionRunReport:
        score, plan = self.plan_session(session)
        if plan is not None:
            workflow = self.orchestrator.create_workflow_from_split_plan(
                plan,
                name=session.name,
                description=session.description,
            )
        else:
            workflow = self.orchestrator.create_custom_workflow(
                name=session.name,
                description=session.description,
                units=[UnitSpec(id=session.id, name=session.name, request=session.request)],
            )
            workflow.metadata["parent_session_id"] = session.id

        error: str | None = None
        await self._start_autosave()
        try:
            await self.orchestrator.execute_workflow(workflow.id, options)
        except Exception as run_error:  # noqa: BLE001
            error = str(run_error)
            logger.error("Session %s workflow %s stopped: %s", session.id, workflow.id, error)
        finally:
            await self._stop_autosave()
            await self._flush_tracked(workflow)

        report = SessionRunReport(
            session_id=session.id,
            score=score,
            workflow=workflow,
            plan=plan,
            error=error,
        )
        report.learned_patterns = self._learn(session, score, workflow, split=plan is not None)
        if plan is not None:
            report.merged = self.splitter.merge_split_results(
                session.id,
                [result for _, result in unit_results(workflow)],
            )
        return report

    def _learn(
        self,
        session: WorkSession,
        score: ComplexityScore,
        workflow: Workflow,
        *,
        split: bool,
    ) -> list[str]:
        learned: list[str] = []
        for unit_id, result in unit_results(workflow):
            if not split:
                learned.append(self.learning.learn_from_session(session, score, result).key)
                continue
            unit = workflow.unit(unit_id)
            unit_session = WorkSession(
                id=unit.id,
                name=unit.name,
                user_id=session.user_id,
                project_id=session.project_id,
                request=unit.request,
                metadata=dict(unit.metadata),
            )
            unit_score = (
                self.analyzer.analyze_complexity(unit.request, record=False)
                if unit.request is not None
                else score
            )
            learned.append(self.learning.learn_from_session(unit_session, unit_score, result).key)
        return learned

    def _track_unit(self, notification: WorkflowNotification) -> None:
        unit_id = notification.unit_id
        if unit_id is None:
            return
        workflow = self.orchestrator.get_workflow(notification.workflow_id)
        state: dict[str, Any] = {
            "workflow_id": workflow.id,
            "unit_id": unit_id,
            "event": notification.event.value,
            "error": notification.error,
        }
        result = workflow.results.get(unit_id)
        if result is not None:
            state["result"] = result.to_payload()
        metadata = SessionMetadata(
            phase=notification.event.value,
            progress=workflow.progress.percent_complete,
            documents_count=len(result.deliverables) if result is not None else 0,
        )
        if notification.event is WorkflowEvent.UNIT_STARTING:
            self.autosave.register_session(unit_id, state, metadata)
        else:
            self.autosave.update_session(unit_id, state, metadata)

    async def _start_autosave(self) -> None:
        if self._active_runs == 0:
            await self.autosave.start()
        self._active_runs += 1

    async def _stop_autosave(self) -> None:
        self._active_runs -= 1
        if self._active_runs == 0:
            await self.autosave.stop()

    async def _flush_tracked(self, workflow: Workflow) -> None:
        tracked = {item["session_id"] for item in self.autosave.get_active_sessions_summary()}
        for unit in workflow.units:
            if unit.id not in tracked:
                continue
            await self.autosave.force_save(unit.id)
            self.autosave.unregister_session(unit.id)


def unit_results(workflow: Workflow) -> list[tuple[str, ExecutionResult]]:
    """Results of executed units in execution order."""

    return [
        (unit_id, workflow.results[unit_id])
        for unit_id in workflow.execution_order
        if unit_id in workflow.results
    ]
