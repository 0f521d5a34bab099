"""Workflow errors."""

from __future__ import annotations

from sessionhub.models import ExecutionResult
from sessionhub.planning.graph import CyclicDependencyError

__all__ = [
    "CyclicDependencyError",
    "DependencyNotMetError",
    "InvalidWorkflowTransitionError",
    "UnitExecutionError",
    "WorkflowAlreadyRunningError",
    "WorkflowCancelledError",
    "WorkflowError",
    "WorkflowNotFoundError",
]


class WorkflowError(RuntimeError):
    """Base class for orchestration failures."""


class WorkflowNotFoundError(WorkflowError):
    """Raised for unknown workflow ids."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class InvalidWorkflowTransitionError(WorkflowError):
    """Raised when pause/resume/cancel/execute is invalid for the current status."""


class WorkflowAlreadyRunningError(WorkflowError):
    """Raised when a workflow is executed while already executing."""


class WorkflowCancelledError(WorkflowError):
    """Raised by the execution loop once it observes a cancel request."""


class DependencyNotMetError(WorkflowError):
    """Raised when a unit is reached before its dependencies completed."""

    def __init__(self, unit_id: str, missing: list[str]) -> None:
        super().__init__(f"Dependencies not met for unit {unit_id}: {', '.join(missing)}")
        self.unit_id = unit_id
        self.missing = missing


class UnitExecutionError(WorkflowError):
    """Raised when the execution phase reports a failed result."""

    def __init__(self, unit_id: str, result: ExecutionResult) -> None:
        reason = "; ".join(result.errors) or "execution phase reported failure"
        super().__init__(f"Unit {unit_id} failed: {reason}")
        self.unit_id = unit_id
        self.result = result
