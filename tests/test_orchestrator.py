from __future__ import annotations

import asyncio

import allure
import pytest

from sessionhub.models import SessionStatus, WorkRequest, WorkSession
from sessionhub.orchestrator.echo import EchoExecutor
from sessionhub.orchestrator.errors import (
    CyclicDependencyError,
    InvalidWorkflowTransitionError,
    UnitExecutionError,
    WorkflowCancelledError,
    WorkflowNotFoundError,
)
from sessionhub.orchestrator.events import WorkflowEvent, WorkflowNotification
from sessionhub.orchestrator.framework import OrchestrationFramework
from sessionhub.orchestrator.models import ExecutionOptions, UnitSpec, WorkflowStatus
from sessionhub.orchestrator.registry import InMemorySessionRegistry
from sessionhub.persistence.store import SessionPersistence
from sessionhub.planning.complexity import ComplexityAnalyzer
from sessionhub.planning.splitting import SplittingEngine
from sessionhub.recovery.service import RecoveryService

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Workflow Execution"),
]

CHAIN = [
    UnitSpec(id="c", dependencies=["b"]),
    UnitSpec(id="a"),
    UnitSpec(id="b", dependencies=["a"]),
]


def _options(**overrides) -> ExecutionOptions:
    values = {"pause_between_units_seconds": 0, "retry_delay_seconds": 0}
    values.update(overrides)
    return ExecutionOptions(**values)


def _framework(executor: EchoExecutor, fake_sleep, **kwargs) -> OrchestrationFramework:
    return OrchestrationFramework(executor=executor, sleep=fake_sleep, **kwargs)


def test_chain_runs_in_dependency_order_and_hands_over_outputs(fake_sleep) -> None:
    executor = EchoExecutor()
    framework = _framework(executor, fake_sleep)
    workflow = framework.create_custom_workflow(name="chain", description="", units=CHAIN)
    events: list[WorkflowNotification] = []
    framework.subscribe(events.append)

    result = asyncio.run(framework.execute_workflow(workflow.id, _options()))

    assert workflow.execution_order == ["a", "b", "c"]
    assert executor.calls == ["a", "b", "c"]
    assert result.state.status is WorkflowStatus.COMPLETED
    assert result.state.pending == []
    assert result.progress.percent_complete == 100.0
    assert result.progress.estimated_time_remaining == 0
    transitions = framework.get_workflow_transitions(workflow.id)
    assert [(item.from_unit, item.to_unit) for item in transitions] == [
        ("start", "a"),
        ("a", "b"),
        ("b", "c"),
    ]
    assert executor.contexts["c"]["b_outputs"]["summary"] == "b done"
    assert "a_outputs" not in executor.contexts["c"]
    assert events[0].event is WorkflowEvent.STARTED
    assert events[-1].event is WorkflowEvent.COMPLETED
    assert fake_sleep.delays == []


def test_failed_unit_stops_workflow(fake_sleep) -> None:
    executor = EchoExecutor(fail_units={"b"})
    registry = InMemorySessionRegistry()
    framework = _framework(executor, fake_sleep, registry=registry)
    workflow = framework.create_custom_workflow(name="chain", description="", units=CHAIN)

    with pytest.raises(UnitExecutionError, match="Unit b failed"):
        asyncio.run(framework.execute_workflow(workflow.id, _options()))

    assert workflow.state.status is WorkflowStatus.FAILED
    assert workflow.state.completed == ["a"]
    assert workflow.state.failed == ["b"]
    assert workflow.state.pending == ["c"]
    assert executor.calls == ["a", "b"]
    assert registry.history("a") == [
        SessionStatus.PLANNING,
        SessionStatus.EXECUTING,
        SessionStatus.COMPLETED,
    ]
    assert registry.history("b") == [
        SessionStatus.PLANNING,
        SessionStatus.EXECUTING,
        SessionStatus.FAILED,
    ]
    assert registry.history("c") == []
    assert registry.results["b"].errors == ["execution failed for b"]


def test_continue_on_failure_skips_dependents(fake_sleep) -> None:
    executor = EchoExecutor(fail_units={"b"})
    framework = _framework(executor, fake_sleep)
    workflow = framework.create_custom_workflow(name="chain", description="", units=CHAIN)

    result = asyncio.run(
        framework.execute_workflow(
            workflow.id,
            _options(continue_on_failure=True, retry_failed_units=False),
        ),
    )

    assert result.state.status is WorkflowStatus.COMPLETED
    assert result.state.completed == ["a"]
    assert result.state.failed == ["b"]
    assert result.state.pending == ["c"]
    assert executor.calls == ["a", "b"]


def test_failed_unit_is_retried_without_recovery_service(fake_sleep) -> None:
    executor = EchoExecutor(flaky_units={"b": 1})
    framework = _framework(executor, fake_sleep)
    workflow = framework.create_custom_workflow(name="chain", description="", units=CHAIN)
    events: list[WorkflowEvent] = []
    framework.subscribe(lambda notification: events.append(notification.event))

    result = asyncio.run(
        framework.execute_workflow(workflow.id, _options(continue_on_failure=True)),
    )

    assert executor.calls == ["a", "b", "b", "c"]
    assert result.state.completed == ["a", "b", "c"]
    assert result.state.failed == []
    assert fake_sleep.delays == [0]
    assert WorkflowEvent.UNIT_FAILED in events
    assert WorkflowEvent.UNIT_RETRYING in events


def test_failed_unit_is_retried_through_recovery_service(
    persistence: SessionPersistence,
    fake_sleep,
) -> None:
    executor = EchoExecutor(flaky_units={"b": 1})
    recovery = RecoveryService(persistence=persistence, sleep=fake_sleep)
    framework = _framework(executor, fake_sleep, recovery=recovery)
    workflow = framework.create_custom_workflow(name="chain", description="", units=CHAIN)

    result = asyncio.run(
        framework.execute_workflow(workflow.id, _options(continue_on_failure=True)),
    )

    assert result.state.completed == ["a", "b", "c"]
    assert result.state.failed == []
    assert recovery.get_retry_count(workflow.id) == 1
    assert fake_sleep.delays == [1.0]
    history = recovery.get_error_history(workflow.id)
    assert [item.category.value for item in history] == ["execution"]
    assert persistence.get_latest_checkpoint(workflow.id).phase == "b_retry_1"


def test_pause_export_and_resume_elsewhere(fake_sleep) -> None:
    executor = EchoExecutor()
    framework = _framework(executor, fake_sleep)
    workflow = framework.create_custom_workflow(name="chain", description="", units=CHAIN)

    def pause_after_a(notification: WorkflowNotification) -> None:
        if notification.event is WorkflowEvent.UNIT_COMPLETED and notification.unit_id == "a":
            framework.pause_workflow(workflow.id)

    framework.subscribe(pause_after_a)

    async def scenario() -> str:
        run = asyncio.create_task(framework.execute_workflow(workflow.id, _options()))
        while not run.done() and workflow.state.status is not WorkflowStatus.PAUSED:
            await asyncio.sleep(0)
        exported = framework.export_workflow(workflow.id)
        assert [item.id for item in framework.list_active_workflows()] == [workflow.id]
        framework.resume_workflow(workflow.id)
        await run
        return exported

    exported = asyncio.run(scenario())

    assert executor.calls == ["a", "b", "c"]
    assert workflow.state.status is WorkflowStatus.COMPLETED

    other_executor = EchoExecutor()
    other = _framework(other_executor, fake_sleep)
    imported = other.import_workflow(exported)

    assert imported.id == workflow.id
    assert imported.state.status is WorkflowStatus.PENDING
    assert imported.state.completed == ["a"]

    asyncio.run(other.execute_workflow(imported.id, _options()))

    assert other_executor.calls == ["b", "c"]
    assert other_executor.contexts["b"]["a_outputs"]["summary"] == "a done"
    assert imported.state.completed == ["a", "b", "c"]


@pytest.mark.parametrize("max_parallel_units", [1, 2])
def test_pause_during_last_unit_holds_completion_until_resume(
    fake_sleep,
    max_parallel_units: int,
) -> None:
    executor = EchoExecutor()
    framework = _framework(executor, fake_sleep)
    workflow = framework.create_custom_workflow(name="chain", description="", units=CHAIN)

    def pause_on_c(notification: WorkflowNotification) -> None:
        if notification.event is WorkflowEvent.UNIT_STARTING and notification.unit_id == "c":
            framework.pause_workflow(workflow.id)

    framework.subscribe(pause_on_c)

    async def scenario() -> WorkflowStatus:
        options = _options(max_parallel_units=max_parallel_units)
        run = asyncio.create_task(framework.execute_workflow(workflow.id, options))
        while not run.done() and "c" not in workflow.state.completed:
            await asyncio.sleep(0)
        for _ in range(5):
            await asyncio.sleep(0)
        assert not run.done()
        held = workflow.state.status
        framework.resume_workflow(workflow.id)
        await run
        return held

    held = asyncio.run(scenario())

    assert held is WorkflowStatus.PAUSED
    assert executor.calls == ["a", "b", "c"]
    assert workflow.state.status is WorkflowStatus.COMPLETED


def test_cancel_stops_before_next_unit(fake_sleep) -> None:
    executor = EchoExecutor()
    framework = _framework(executor, fake_sleep)
    workflow = framework.create_custom_workflow(name="chain", description="", units=CHAIN)

    def cancel_after_a(notification: WorkflowNotification) -> None:
        if notification.event is WorkflowEvent.UNIT_COMPLETED and notification.unit_id == "a":
            framework.cancel_workflow(workflow.id)

    framework.subscribe(cancel_after_a)

    with pytest.raises(WorkflowCancelledError):
        asyncio.run(framework.execute_workflow(workflow.id, _options()))

    assert workflow.state.status is WorkflowStatus.CANCELLED
    assert executor.calls == ["a"]
    assert workflow.progress.end_time is not None
    with pytest.raises(InvalidWorkflowTransitionError):
        framework.cancel_workflow(workflow.id)
    with pytest.raises(InvalidWorkflowTransitionError):
        asyncio.run(framework.execute_workflow(workflow.id, _options()))


def test_invalid_custom_workflows_are_rejected(fake_sleep) -> None:
    framework = _framework(EchoExecutor(), fake_sleep)

    with pytest.raises(CyclicDependencyError, match="a -> b -> a"):
        framework.create_custom_workflow(
            name="loop",
            description="",
            units=[UnitSpec(id="a", dependencies=["b"]), UnitSpec(id="b", dependencies=["a"])],
        )
    with pytest.raises(ValueError, match="Unknown dependency"):
        framework.create_custom_workflow(
            name="ghost",
            description="",
            units=[UnitSpec(id="a", dependencies=["ghost"])],
        )
    with pytest.raises(ValueError, match="Duplicate unit ids"):
        framework.create_custom_workflow(
            name="dupes",
            description="",
            units=[UnitSpec(id="a"), UnitSpec(id="a")],
        )
    assert framework.list_workflows() == []


def test_long_custom_chain_is_ordered(fake_sleep) -> None:
    framework = _framework(EchoExecutor(), fake_sleep)
    units = [
        UnitSpec(id=f"u{index}", dependencies=[f"u{index - 1}"] if index else [])
        for index in reversed(range(1200))
    ]

    workflow = framework.create_custom_workflow(name="long", description="", units=units)

    assert workflow.execution_order == [f"u{index}" for index in range(1200)]


def test_pause_and_resume_require_matching_status(fake_sleep) -> None:
    framework = _framework(EchoExecutor(), fake_sleep)
    workflow = framework.create_custom_workflow(name="chain", description="", units=CHAIN)

    with pytest.raises(InvalidWorkflowTransitionError, match="Cannot pause"):
        framework.pause_workflow(workflow.id)
    with pytest.raises(InvalidWorkflowTransitionError, match="Cannot resume"):
        framework.resume_workflow(workflow.id)
    with pytest.raises(WorkflowNotFoundError):
        framework.pause_workflow("missing")


def test_parallel_batches_respect_dependencies(fake_sleep) -> None:
    executor = EchoExecutor()
    framework = _framework(executor, fake_sleep)
    workflow = framework.create_custom_workflow(
        name="fan-in",
        description="",
        units=[
            UnitSpec(id="a"),
            UnitSpec(id="b"),
            UnitSpec(id="c", dependencies=["a", "b"]),
        ],
    )

    result = asyncio.run(
        framework.execute_workflow(
            workflow.id,
            _options(max_parallel_units=2, pause_between_units_seconds=0.5),
        ),
    )

    assert executor.calls == ["a", "b", "c"]
    assert sorted(result.state.completed) == ["a", "b", "c"]
    assert set(executor.contexts["c"]) == {"a_outputs", "b_outputs"}
    assert fake_sleep.delays == [0.5]


def test_failed_workflow_can_be_executed_again(fake_sleep) -> None:
    executor = EchoExecutor(fail_units={"b"})
    framework = _framework(executor, fake_sleep)
    workflow = framework.create_custom_workflow(name="chain", description="", units=CHAIN)

    with pytest.raises(UnitExecutionError):
        asyncio.run(framework.execute_workflow(workflow.id, _options()))
    executor.fail_units.clear()
    result = asyncio.run(framework.execute_workflow(workflow.id, _options()))

    assert executor.calls == ["a", "b", "b", "c"]
    assert result.state.status is WorkflowStatus.COMPLETED
    assert result.state.completed == ["a", "b", "c"]
    assert result.state.failed == []


def test_remove_workflow(fake_sleep) -> None:
    framework = _framework(EchoExecutor(), fake_sleep)
    workflow = framework.create_custom_workflow(name="chain", description="", units=CHAIN)

    framework.remove_workflow(workflow.id)

    with pytest.raises(WorkflowNotFoundError, match="Workflow not found"):
        framework.get_workflow(workflow.id)


def test_failing_observer_does_not_break_workflow(fake_sleep) -> None:
    framework = _framework(EchoExecutor(), fake_sleep)

    def broken(_notification: WorkflowNotification) -> None:
        raise RuntimeError("observer bug")

    unsubscribe = framework.subscribe(broken)
    workflow = framework.create_custom_workflow(name="chain", description="", units=CHAIN)
    result = asyncio.run(framework.execute_workflow(workflow.id, _options()))
    unsubscribe()

    assert result.state.status is WorkflowStatus.COMPLETED


def test_import_rejects_malformed_export(fake_sleep) -> None:
    framework = _framework(EchoExecutor(), fake_sleep)

    with pytest.raises(ValueError, match="'workflow' key"):
        framework.import_workflow("[]")


def test_split_plan_workflow_checkpoints_under_parent_session(
    persistence: SessionPersistence,
    fake_sleep,
) -> None:
    request = WorkRequest(
        content="\n".join(
            [
                "1. Add database schema migration for invoices",
                "2. Integrate the payment api and webhook endpoint",
                "3. Build ui component for the invoice page",
            ],
        ),
    )
    session = WorkSession(id="billing", name="Billing", request=request)
    plan = SplittingEngine().split_session(
        session,
        ComplexityAnalyzer().analyze_complexity(request),
    )
    executor = EchoExecutor()
    framework = _framework(executor, fake_sleep, persistence=persistence)
    workflow = framework.create_workflow_from_split_plan(plan, name="Billing")

    assert workflow.progress.estimated_time_remaining == plan.estimated_total_duration
    assert workflow.metadata["parent_session_id"] == "billing"

    asyncio.run(framework.execute_workflow(workflow.id, _options()))

    assert executor.calls == plan.execution_order
    checkpoints = persistence.get_checkpoints("billing")
    assert len(checkpoints) == len(plan.units)
    assert checkpoints[0].phase == f"unit_completed:{plan.execution_order[-1]}"
    assert checkpoints[0].state["completed"] == plan.execution_order
