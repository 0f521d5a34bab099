"""Collaborator protocols of the orchestration framework."""

from __future__ import annotations

from typing import Any, Protocol

from sessionhub.models import ExecutionResult, SessionStatus
from sessionhub.orchestrator.models import WorkflowUnit


class UnitExecutor(Protocol):
    """External execution phase that performs one unit of work."""

    async def run(self, unit: WorkflowUnit, context: dict[str, Any]) -> ExecutionResult:
        """Execute ``unit``; raise or return a failed result on failure."""


class SessionRegistry(Protocol):
    """Session registry receiving unit status updates and final results."""

    def update_status(
        self,
        unit_id: str,
        status: SessionStatus,
        metadata: dict[str, Any],
    ) -> None:
        """Record a status transition of a unit."""

    def complete(self, unit_id: str, result: ExecutionResult) -> None:
        """Record the final result of a unit."""
