"""Workflow orchestration over split units.

The framework owns workflows, runs their units in dependency order through a
``UnitExecutor`` and reports every unit status change to an optional
``SessionRegistry``. Pause, resume and cancel only flip state; the running
loop observes them between units.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any
from uuid import uuid4

from sessionhub.config import OrchestrationSettings
from sessionhub.models import ExecutionResult, ExecutionStatus, SessionStatus
from sessionhub.orchestrator.errors import (
    DependencyNotMetError,
    InvalidWorkflowTransitionError,
    UnitExecutionError,
    WorkflowAlreadyRunningError,
    WorkflowCancelledError,
    WorkflowNotFoundError,
)
from sessionhub.orchestrator.events import (
    ObserverRegistry,
    WorkflowEvent,
    WorkflowNotification,
    WorkflowObserver,
)
from sessionhub.orchestrator.executor import SessionRegistry, UnitExecutor
from sessionhub.orchestrator.models import (
    CUSTOM_UNIT_ESTIMATE_MINUTES,
    ExecutionOptions,
    UnitSpec,
    UnitTransition,
    Workflow,
    WorkflowProgress,
    WorkflowState,
    WorkflowStatus,
    WorkflowUnit,
)
from sessionhub.persistence.store import SessionPersistence
from sessionhub.planning.complexity import round_half_up
from sessionhub.planning.graph import depth_first_order
from sessionhub.planning.models import WorkflowPlan
from sessionhub.recovery.models import RetryStrategy, RollbackStrategy
from sessionhub.recovery.service import RecoveryService
from sessionhub.timestamps import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

START_MARKER = "start"
EXPORT_FORMAT_VERSION = 1


class OrchestrationFramework:
    """Create, execute and control workflows of split units."""

    def __init__(
        self,
        *,
        executor: UnitExecutor,
        registry: SessionRegistry | None = None,
        persistence: SessionPersistence | None = None,
        recovery: RecoveryService | None = None,
        settings: OrchestrationSettings | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.executor = executor
        self.registry = registry
        self.persistence = persistence
        self.recovery = recovery
        self.default_options = ExecutionOptions.from_settings(
            settings or OrchestrationSettings(),
        )
        self._sleep = sleep
        self._workflows: dict[str, Workflow] = {}
        self._transitions: dict[str, list[UnitTransition]] = {}
        self._gates: dict[str, asyncio.Event] = {}
        self._observers = ObserverRegistry()

    def subscribe(self, observer: WorkflowObserver) -> Callable[[], None]:
        return self._observers.subscribe(observer)

    def create_workflow_from_split_plan(
        self,
        plan: WorkflowPlan,
        *,
        name: str,
        description: str = "",
    ) -> Workflow:
        units = [
            WorkflowUnit(
                id=unit.id,
                name=unit.name,
                dependencies=list(unit.dependencies),
                request=unit.request,
                estimated_minutes=round_half_up(unit.estimated_complexity * 0.5 + 10),
                context=dict(unit.context),
                metadata={**unit.metadata, "focus_area": unit.focus_area, "order": unit.order},
            )
            for unit in plan.units
        ]
        workflow = self._register(
            name=name,
            description=description,
            units=units,
            execution_order=list(plan.execution_order),
            metadata={
                "parent_session_id": plan.parent_id,
                "optimization_notes": list(plan.optimization_notes),
                "estimated_total_duration": plan.estimated_total_duration,
            },
        )
        workflow.progress.estimated_time_remaining = plan.estimated_total_duration
        return workflow

    def create_custom_workflow(
        self,
        *,
        name: str,
        description: str,
        units: Sequence[UnitSpec],
    ) -> Workflow:
        """Create a workflow from hand-specified units.

        Raises ``ValueError`` for duplicate ids or unknown dependencies and
        ``CyclicDependencyError`` when the units cannot be ordered.
        """

        ids = [spec.id for spec in units]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate unit ids in workflow {name!r}.")
        dependencies = {spec.id: list(spec.dependencies) for spec in units}
        order = depth_first_order(ids, dependencies)
        workflow_units = [
            WorkflowUnit(
                id=spec.id,
                name=spec.name or spec.id,
                dependencies=list(spec.dependencies),
                request=spec.request,
            )
            for spec in units
        ]
        return self._register(
            name=name,
            description=description,
            units=workflow_units,
            execution_order=order,
            metadata={"custom": True},
        )

    async def execute_workflow(
        self,
        workflow_id: str,
        options: ExecutionOptions | None = None,
    ) -> Workflow:
        """Run all not yet completed units of a workflow.

        Re-execution is allowed from ``pending`` and ``failed``; completed
        units are kept and skipped. Raises the unit error when a unit fails
        and ``continue_on_failure`` is off, ``WorkflowCancelledError`` when
        the workflow is cancelled mid-run.
        """

        workflow = self.get_workflow(workflow_id)
        if workflow_id in self._gates:
            raise WorkflowAlreadyRunningError(f"Workflow {workflow_id} is already running.")
        if workflow.state.status not in {WorkflowStatus.PENDING, WorkflowStatus.FAILED}:
            raise InvalidWorkflowTransitionError(
                f"Cannot execute workflow {workflow_id} in status {workflow.state.status.value}.",
            )
        opts = options or self.default_options
        if opts.max_parallel_units < 1:
            raise ValueError("max_parallel_units must be >= 1.")

        self._reset_for_run(workflow)
        gate = asyncio.Event()
        gate.set()
        self._gates[workflow_id] = gate
        self._set_status(workflow, WorkflowStatus.RUNNING)
        if workflow.progress.start_time is None:
            workflow.progress.start_time = utc_now()
        logger.info(
            "Executing workflow %s (%d units, parallel=%d)",
            workflow_id,
            len(workflow.units),
            opts.max_parallel_units,
        )
        self._notify(WorkflowEvent.STARTED, workflow)

        try:
            if opts.max_parallel_units > 1:
                await self._run_in_batches(workflow, opts)
            else:
                await self._run_sequentially(workflow, opts)
            await self._wait_if_paused(workflow)
        except WorkflowCancelledError:
            workflow.progress.end_time = workflow.progress.end_time or utc_now()
            logger.info("Workflow %s stopped after cancellation", workflow_id)
            raise
        except asyncio.CancelledError:
            self._set_status(workflow, WorkflowStatus.CANCELLED)
            workflow.progress.end_time = utc_now()
            self._notify(WorkflowEvent.CANCELLED, workflow)
            raise
        except Exception as error:
            if workflow.state.status is not WorkflowStatus.CANCELLED:
                self._set_status(workflow, WorkflowStatus.FAILED)
                workflow.progress.end_time = utc_now()
                logger.error("Workflow %s failed: %s", workflow_id, error)
                self._notify(WorkflowEvent.FAILED, workflow, error=str(error))
            raise
        else:
            self._set_status(workflow, WorkflowStatus.COMPLETED)
            workflow.progress.end_time = utc_now()
            workflow.state.current_unit = None
            logger.info(
                "Workflow %s completed (%d completed, %d failed)",
                workflow_id,
                len(workflow.state.completed),
                len(workflow.state.failed),
            )
            self._notify(WorkflowEvent.COMPLETED, workflow)
            return workflow
        finally:
            self._gates.pop(workflow_id, None)

    def pause_workflow(self, workflow_id: str) -> Workflow:
        workflow = self.get_workflow(workflow_id)
        if workflow.state.status is not WorkflowStatus.RUNNING:
            raise InvalidWorkflowTransitionError(
                f"Cannot pause workflow {workflow_id} in status {workflow.state.status.value}.",
            )
        self._set_status(workflow, WorkflowStatus.PAUSED)
        gate = self._gates.get(workflow_id)
        if gate is not None:
            gate.clear()
        logger.info("Workflow %s paused", workflow_id)
        self._notify(WorkflowEvent.PAUSED, workflow)
        return workflow

    def resume_workflow(self, workflow_id: str) -> Workflow:
        workflow = self.get_workflow(workflow_id)
        if workflow.state.status is not WorkflowStatus.PAUSED:
            raise InvalidWorkflowTransitionError(
                f"Cannot resume workflow {workflow_id} in status {workflow.state.status.value}.",
            )
        self._set_status(workflow, WorkflowStatus.RUNNING)
        gate = self._gates.get(workflow_id)
        if gate is not None:
            gate.set()
        logger.info("Workflow %s resumed", workflow_id)
        self._notify(WorkflowEvent.RESUMED, workflow)
        return workflow

    def cancel_workflow(self, workflow_id: str) -> Workflow:
        workflow = self.get_workflow(workflow_id)
        if workflow.state.status.is_terminal:
            raise InvalidWorkflowTransitionError(
                f"Cannot cancel workflow {workflow_id} in status {workflow.state.status.value}.",
            )
        self._set_status(workflow, WorkflowStatus.CANCELLED)
        workflow.progress.end_time = utc_now()
        gate = self._gates.get(workflow_id)
        if gate is not None:
            gate.set()
        logger.info("Workflow %s cancelled", workflow_id)
        self._notify(WorkflowEvent.CANCELLED, workflow)
        return workflow

    def get_workflow(self, workflow_id: str) -> Workflow:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    def list_workflows(self) -> list[Workflow]:
        return sorted(self._workflows.values(), key=lambda item: item.created_at)

    def list_active_workflows(self) -> list[Workflow]:
        return [
            workflow
            for workflow in self.list_workflows()
            if workflow.state.status in {WorkflowStatus.RUNNING, WorkflowStatus.PAUSED}
        ]

    def get_workflow_transitions(self, workflow_id: str) -> list[UnitTransition]:
        self.get_workflow(workflow_id)
        return list(self._transitions.get(workflow_id, []))

    def remove_workflow(self, workflow_id: str) -> None:
        workflow = self.get_workflow(workflow_id)
        if workflow.state.status in {WorkflowStatus.RUNNING, WorkflowStatus.PAUSED}:
            raise InvalidWorkflowTransitionError(
                f"Cannot remove workflow {workflow_id} in status {workflow.state.status.value}.",
            )
        del self._workflows[workflow_id]
        self._transitions.pop(workflow_id, None)

    def export_workflow(self, workflow_id: str) -> str:
        workflow = self.get_workflow(workflow_id)
        payload = {
            "version": EXPORT_FORMAT_VERSION,
            "workflow": workflow.to_payload(),
            "transitions": [
                {
                    "from_unit": item.from_unit,
                    "to_unit": item.to_unit,
                    "context": item.context,
                    "outputs": item.outputs,
                    "timestamp": item.timestamp.isoformat(),
                }
                for item in self._transitions.get(workflow_id, [])
            ],
        }
        return json.dumps(payload, indent=2, sort_keys=True, default=str)

    def import_workflow(self, data: str) -> Workflow:
        """Load an exported workflow.

        A workflow exported while running or paused comes back as ``pending``
        so it can be executed again from where it stopped.
        """

        payload = json.loads(data)
        if not isinstance(payload, dict) or not isinstance(payload.get("workflow"), dict):
            raise ValueError("Workflow export must be a JSON object with a 'workflow' key.")
        workflow = Workflow.from_payload(payload["workflow"])
        if workflow.id in self._gates:
            raise WorkflowAlreadyRunningError(f"Workflow {workflow.id} is already running.")
        depth_first_order([unit.id for unit in workflow.units], workflow.dependencies)
        if workflow.state.status in {WorkflowStatus.RUNNING, WorkflowStatus.PAUSED}:
            workflow.state.status = WorkflowStatus.PENDING
            workflow.state.current_unit = None
        self._workflows[workflow.id] = workflow
        self._transitions[workflow.id] = [
            UnitTransition(
                from_unit=str(item["from_unit"]),
                to_unit=str(item["to_unit"]),
                context=dict(item.get("context") or {}),
                outputs=dict(item.get("outputs") or {}),
                timestamp=parse_timestamp(str(item["timestamp"])),
            )
            for item in payload.get("transitions", [])
        ]
        logger.info("Imported workflow %s (%s)", workflow.id, workflow.state.status.value)
        return workflow

    def _register(
        self,
        *,
        name: str,
        description: str,
        units: list[WorkflowUnit],
        execution_order: list[str],
        metadata: dict[str, Any],
    ) -> Workflow:
        now = utc_now()
        workflow = Workflow(
            id=f"workflow_{int(now.timestamp() * 1000)}_{uuid4().hex[:8]}",
            name=name,
            description=description,
            units=units,
            execution_order=execution_order,
            dependencies={unit.id: list(unit.dependencies) for unit in units},
            state=WorkflowState(pending=list(execution_order)),
            progress=WorkflowProgress(
                total_units=len(units),
                estimated_time_remaining=sum(unit.estimated_minutes for unit in units)
                or len(units) * CUSTOM_UNIT_ESTIMATE_MINUTES,
            ),
            created_at=now,
            updated_at=now,
            metadata=metadata,
        )
        self._workflows[workflow.id] = workflow
        self._transitions[workflow.id] = []
        logger.info("Workflow %s created with %d units", workflow.id, len(units))
        self._notify(WorkflowEvent.CREATED, workflow)
        return workflow

    def _reset_for_run(self, workflow: Workflow) -> None:
        completed = set(workflow.state.completed)
        workflow.state.failed = []
        workflow.state.pending = [
            unit_id for unit_id in workflow.execution_order if unit_id not in completed
        ]
        workflow.progress.failed_units = 0
        workflow.progress.end_time = None

    async def _run_sequentially(self, workflow: Workflow, opts: ExecutionOptions) -> None:
        remaining = [
            unit_id
            for unit_id in workflow.execution_order
            if unit_id not in workflow.state.completed
        ]
        for position, unit_id in enumerate(remaining):
            await self._wait_if_paused(workflow)
            missing = self._missing_dependencies(workflow, unit_id)
            if missing:
                if not opts.continue_on_failure:
                    raise DependencyNotMetError(unit_id, missing)
                logger.warning(
                    "Skipping unit %s of workflow %s: dependencies not met (%s)",
                    unit_id,
                    workflow.id,
                    ", ".join(missing),
                )
                continue
            await self._run_unit_with_policy(workflow, unit_id, opts)
            if position < len(remaining) - 1 and opts.pause_between_units_seconds > 0:
                await self._sleep(opts.pause_between_units_seconds)

    async def _run_in_batches(self, workflow: Workflow, opts: ExecutionOptions) -> None:
        remaining = [
            unit_id
            for unit_id in workflow.execution_order
            if unit_id not in workflow.state.completed
        ]
        while remaining:
            await self._wait_if_paused(workflow)
            ready = [
                unit_id
                for unit_id in remaining
                if not self._missing_dependencies(workflow, unit_id)
            ]
            if not ready:
                if not opts.continue_on_failure:
                    unit_id = remaining[0]
                    raise DependencyNotMetError(
                        unit_id,
                        self._missing_dependencies(workflow, unit_id),
                    )
                logger.warning(
                    "Skipping %d units of workflow %s: dependencies not met",
                    len(remaining),
                    workflow.id,
                )
                return
            batch = ready[: opts.max_parallel_units]
            outcomes = await asyncio.gather(
                *(self._run_unit_with_policy(workflow, unit_id, opts) for unit_id in batch),
                return_exceptions=True,
            )
            for unit_id in batch:
                remaining.remove(unit_id)
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
            if remaining and opts.pause_between_units_seconds > 0:
                await self._sleep(opts.pause_between_units_seconds)

    async def _run_unit_with_policy(
        self,
        workflow: Workflow,
        unit_id: str,
        opts: ExecutionOptions,
    ) -> None:
        try:
            result = await self._execute_unit(workflow, unit_id, opts)
        except WorkflowCancelledError:
            raise
        except Exception as error:
            self._mark_failed(workflow, unit_id, error)
            if not opts.continue_on_failure:
                raise
            if opts.retry_failed_units and opts.max_retries > 0:
                await self._retry_unit(workflow, unit_id, opts, error)
        else:
            self._mark_completed(workflow, unit_id, result)

    async def _retry_unit(
        self,
        workflow: Workflow,
        unit_id: str,
        opts: ExecutionOptions,
        error: Exception,
    ) -> None:
        if self.recovery is not None:
            await self._recover_unit(self.recovery, workflow, unit_id, opts, error)
            return

        for attempt in range(1, opts.max_retries + 1):
            self._raise_if_cancelled(workflow)
            await self._sleep(opts.retry_delay_seconds)
            logger.info(
                "Retrying unit %s of workflow %s (attempt %d/%d)",
                unit_id,
                workflow.id,
                attempt,
                opts.max_retries,
            )
            self._notify(
                WorkflowEvent.UNIT_RETRYING,
                workflow,
                unit_id=unit_id,
                details={"attempt": attempt},
            )
            try:
                result = await self._execute_unit(workflow, unit_id, opts)
            except WorkflowCancelledError:
                raise
            except Exception as retry_error:  # noqa: BLE001
                logger.warning(
                    "Retry %d of unit %s failed: %s",
                    attempt,
                    unit_id,
                    retry_error,
                )
                continue
            self._mark_recovered(workflow, unit_id, result)
            return
        logger.error("Unit %s failed after %d retries", unit_id, opts.max_retries)

    async def _recover_unit(
        self,
        recovery: RecoveryService,
        workflow: Workflow,
        unit_id: str,
        opts: ExecutionOptions,
        error: Exception,
    ) -> None:
        recovered: list[ExecutionResult] = []

        async def retry_operation() -> bool:
            recovered.append(await self._execute_unit(workflow, unit_id, opts))
            return True

        outcome = await recovery.handle_error(
            session_id=workflow.checkpoint_scope,
            state=self._checkpoint_state(workflow),
            error=error,
            phase=unit_id,
            retry_operation=retry_operation,
        )
        if isinstance(outcome.strategy, RetryStrategy) and recovered:
            self._mark_recovered(workflow, unit_id, recovered[-1])
            return
        if isinstance(outcome.strategy, RollbackStrategy) and outcome.success:
            workflow.state.context[f"{unit_id}_restored_state"] = outcome.new_state
            try:
                result = await self._execute_unit(workflow, unit_id, opts)
            except WorkflowCancelledError:
                raise
            except Exception as rollback_error:  # noqa: BLE001
                logger.warning(
                    "Unit %s failed again after rollback: %s",
                    unit_id,
                    rollback_error,
                )
                return
            self._mark_recovered(workflow, unit_id, result)
            return
        logger.warning(
            "Unit %s of workflow %s left failed after %s recovery: %s",
            unit_id,
            workflow.id,
            outcome.strategy.type.value,
            outcome.error or "phase skipped",
        )

    async def _execute_unit(
        self,
        workflow: Workflow,
        unit_id: str,
        opts: ExecutionOptions,
    ) -> ExecutionResult:
        unit = workflow.unit(unit_id)
        context = self._build_context(workflow, unit, opts)
        previous = workflow.state.completed[-1] if workflow.state.completed else START_MARKER
        workflow.state.current_unit = unit_id
        self._notify(WorkflowEvent.UNIT_STARTING, workflow, unit_id=unit_id)
        self._update_registry(unit_id, SessionStatus.PLANNING, {"workflow_id": workflow.id})
        self._update_registry(
            unit_id,
            SessionStatus.EXECUTING,
            {"workflow_id": workflow.id, "context_keys": sorted(context)},
        )

        try:
            result = await self.executor.run(unit, context)
        except Exception:
            self._update_registry(unit_id, SessionStatus.FAILED, {"workflow_id": workflow.id})
            raise

        if self.registry is not None:
            self.registry.complete(unit_id, result)
        workflow.results[unit_id] = result
        if result.status is ExecutionStatus.FAILURE:
            self._update_registry(unit_id, SessionStatus.FAILED, {"workflow_id": workflow.id})
            raise UnitExecutionError(unit_id, result)

        self._update_registry(unit_id, SessionStatus.COMPLETED, {"workflow_id": workflow.id})
        self._transitions.setdefault(workflow.id, []).append(
            UnitTransition(
                from_unit=previous,
                to_unit=unit_id,
                context=context,
                outputs=dict(result.outputs),
                timestamp=utc_now(),
            ),
        )
        return result

    def _build_context(
        self,
        workflow: Workflow,
        unit: WorkflowUnit,
        opts: ExecutionOptions,
    ) -> dict[str, Any]:
        if not opts.preserve_context:
            return dict(unit.context)
        context: dict[str, Any] = {**workflow.state.context, **unit.context}
        transitions = self._transitions.get(workflow.id, [])
        for dependency in unit.dependencies:
            outputs = [item.outputs for item in transitions if item.to_unit == dependency]
            if outputs:
                context[f"{dependency}_outputs"] = outputs[-1]
        return context

    def _mark_completed(self, workflow: Workflow, unit_id: str, result: ExecutionResult) -> None:
        state = workflow.state
        if unit_id not in state.completed:
            state.completed.append(unit_id)
        if unit_id in state.pending:
            state.pending.remove(unit_id)
        self._refresh_progress(workflow)
        logger.info("Unit %s of workflow %s completed", unit_id, workflow.id)
        self._notify(
            WorkflowEvent.UNIT_COMPLETED,
            workflow,
            unit_id=unit_id,
            details={"status": result.status.value},
        )
        self._checkpoint(workflow, f"unit_completed:{unit_id}")
        self._notify(
            WorkflowEvent.PROGRESS,
            workflow,
            details={"percent_complete": workflow.progress.percent_complete},
        )

    def _mark_failed(self, workflow: Workflow, unit_id: str, error: BaseException) -> None:
        state = workflow.state
        if unit_id not in state.failed:
            state.failed.append(unit_id)
        if unit_id in state.pending:
            state.pending.remove(unit_id)
        self._refresh_progress(workflow)
        logger.warning("Unit %s of workflow %s failed: %s", unit_id, workflow.id, error)
        self._notify(WorkflowEvent.UNIT_FAILED, workflow, unit_id=unit_id, error=str(error))

    def _mark_recovered(self, workflow: Workflow, unit_id: str, result: ExecutionResult) -> None:
        if unit_id in workflow.state.failed:
            workflow.state.failed.remove(unit_id)
        self._mark_completed(workflow, unit_id, result)

    def _refresh_progress(self, workflow: Workflow) -> None:
        progress = workflow.progress
        progress.completed_units = len(workflow.state.completed)
        progress.failed_units = len(workflow.state.failed)
        progress.percent_complete = (
            round(progress.completed_units / progress.total_units * 100, 2)
            if progress.total_units
            else 100.0
        )
        done = set(workflow.state.completed) | set(workflow.state.failed)
        progress.estimated_time_remaining = sum(
            unit.estimated_minutes for unit in workflow.units if unit.id not in done
        )
        workflow.updated_at = utc_now()

    def _checkpoint(self, workflow: Workflow, phase: str) -> None:
        if self.persistence is None:
            return
        try:
            self.persistence.create_checkpoint(
                workflow.checkpoint_scope,
                self._checkpoint_state(workflow),
                phase,
            )
        except (OSError, TypeError, ValueError) as error:
            logger.warning("Workflow %s checkpoint failed: %s", workflow.id, error)

    @staticmethod
    def _checkpoint_state(workflow: Workflow) -> dict[str, Any]:
        return {
            "workflow_id": workflow.id,
            "status": workflow.state.status.value,
            "completed": list(workflow.state.completed),
            "failed": list(workflow.state.failed),
            "pending": list(workflow.state.pending),
            "context": dict(workflow.state.context),
            "outputs": {key: dict(value.outputs) for key, value in workflow.results.items()},
        }

    @staticmethod
    def _missing_dependencies(workflow: Workflow, unit_id: str) -> list[str]:
        completed = set(workflow.state.completed)
        return [
            dependency
            for dependency in workflow.dependencies.get(unit_id, [])
            if dependency not in completed
        ]

    async def _wait_if_paused(self, workflow: Workflow) -> None:
        self._raise_if_cancelled(workflow)
        gate = self._gates.get(workflow.id)
        if gate is not None and not gate.is_set():
            logger.info("Workflow %s waiting for resume", workflow.id)
            await gate.wait()
        self._raise_if_cancelled(workflow)

    @staticmethod
    def _raise_if_cancelled(workflow: Workflow) -> None:
        if workflow.state.status is WorkflowStatus.CANCELLED:
            raise WorkflowCancelledError(f"Workflow {workflow.id} was cancelled.")

    def _set_status(self, workflow: Workflow, status: WorkflowStatus) -> None:
        workflow.state.status = status
        workflow.updated_at = utc_now()

    def _update_registry(
        self,
        unit_id: str,
        status: SessionStatus,
        metadata: dict[str, Any],
    ) -> None:
        if self.registry is not None:
            self.registry.update_status(unit_id, status, metadata)

    def _notify(
        self,
        event: WorkflowEvent,
        workflow: Workflow,
        *,
        unit_id: str | None = None,
        error: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self._observers.notify(
            WorkflowNotification(
                event=event,
                workflow_id=workflow.id,
                unit_id=unit_id,
                error=error,
                details=details or {},
            ),
        )
