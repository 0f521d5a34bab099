"""Typed models for workflows and their execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from sessionhub.config import OrchestrationSettings
from sessionhub.models import ExecutionResult, WorkRequest
from sessionhub.timestamps import parse_timestamp

CUSTOM_UNIT_ESTIMATE_MINUTES = 20


class WorkflowStatus(str, Enum):
    """Lifecycle of a workflow."""

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.CANCELLED}


@dataclass(slots=True)
class UnitSpec:
    """Hand-specified unit of a custom workflow."""

    id: str
    dependencies: list[str] = field(default_factory=list)
    name: str = ""
    request: WorkRequest | None = None


@dataclass(slots=True)
class WorkflowUnit:
    """Unit as seen by the execution phase."""

    id: str
    name: str
    dependencies: list[str] = field(default_factory=list)
    request: WorkRequest | None = None
    estimated_minutes: int = CUSTOM_UNIT_ESTIMATE_MINUTES
    context: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class WorkflowState:
    """Mutable execution state of a workflow."""

    status: WorkflowStatus = WorkflowStatus.PENDING
    current_unit: str | None = None
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class WorkflowProgress:
    """Progress counters of a workflow."""

    total_units: int
    completed_units: int = 0
    failed_units: int = 0
    percent_complete: float = 0.0
    estimated_time_remaining: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None


@dataclass(slots=True)
class UnitTransition:
    """Hand-over from one executed unit to the next."""

    from_unit: str
    to_unit: str
    context: dict[str, Any]
    outputs: dict[str, Any]
    timestamp: datetime


@dataclass(slots=True)
class ExecutionOptions:
    """Per-run workflow execution options."""

    continue_on_failure: bool = False
    max_parallel_units: int = 1
    retry_failed_units: bool = True
    max_retries: int = 2
    retry_delay_seconds: float = 1.0
    pause_between_units_seconds: float = 1.0
    preserve_context: bool = True

    @classmethod
    def from_settings(cls, settings: OrchestrationSettings) -> ExecutionOptions:
        return cls(
            continue_on_failure=settings.continue_on_failure,
            max_parallel_units=settings.max_parallel_units,
            retry_failed_units=settings.retry_failed_units,
            max_retries=settings.max_retries,
            retry_delay_seconds=settings.retry_delay_seconds,
            pause_between_units_seconds=settings.pause_between_units_seconds,
            preserve_context=settings.preserve_context,
        )


@dataclass(slots=True)
class Workflow:
    """Runtime instance executing units in dependency order."""

    id: str
    name: str
    description: str
    units: list[WorkflowUnit]
    execution_order: list[str]
    dependencies: dict[str, list[str]]
    state: WorkflowState
    progress: WorkflowProgress
    created_at: datetime
    updated_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)
    results: dict[str, ExecutionResult] = field(default_factory=dict)

    def unit(self, unit_id: str) -> WorkflowUnit:
        for unit in self.units:
            if unit.id == unit_id:
                return unit
        raise KeyError(unit_id)

    @property
    def checkpoint_scope(self) -> str:
        """Session id under which workflow checkpoints are stored."""

        return str(self.metadata.get("parent_session_id") or self.id)

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "units": [_unit_to_payload(unit) for unit in self.units],
            "execution_order": list(self.execution_order),
            "dependencies": {key: list(value) for key, value in self.dependencies.items()},
            "state": {
                "status": self.state.status.value,
                "current_unit": self.state.current_unit,
                "completed": list(self.state.completed),
                "failed": list(self.state.failed),
                "pending": list(self.state.pending),
                "context": dict(self.state.context),
            },
            "progress": {
                "total_units": self.progress.total_units,
                "completed_units": self.progress.completed_units,
                "failed_units": self.progress.failed_units,
                "percent_complete": self.progress.percent_complete,
                "estimated_time_remaining": self.progress.estimated_time_remaining,
                "start_time": _iso(self.progress.start_time),
                "end_time": _iso(self.progress.end_time),
            },
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "metadata": dict(self.metadata),
            "results": {key: value.to_payload() for key, value in self.results.items()},
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Workflow:
        state = payload.get("state") or {}
        progress = payload.get("progress") or {}
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name", "")),
            description=str(payload.get("description", "")),
            units=[_unit_from_payload(item) for item in payload.get("units", [])],
            execution_order=[str(item) for item in payload.get("execution_order", [])],
            dependencies={
                str(key): [str(item) for item in value]
                for key, value in (payload.get("dependencies") or {}).items()
            },
            state=WorkflowState(
                status=WorkflowStatus(str(state.get("status", WorkflowStatus.PENDING.value))),
                current_unit=state.get("current_unit"),
                completed=[str(item) for item in state.get("completed", [])],
                failed=[str(item) for item in state.get("failed", [])],
                pending=[str(item) for item in state.get("pending", [])],
                context=dict(state.get("context") or {}),
            ),
            progress=WorkflowProgress(
                total_units=int(progress.get("total_units", 0)),
                completed_units=int(progress.get("completed_units", 0)),
                failed_units=int(progress.get("failed_units", 0)),
                percent_complete=float(progress.get("percent_complete", 0.0)),
                estimated_time_remaining=int(progress.get("estimated_time_remaining", 0)),
                start_time=_parse_optional(progress.get("start_time")),
                end_time=_parse_optional(progress.get("end_time")),
            ),
            created_at=parse_timestamp(str(payload["created_at"])),
            updated_at=parse_timestamp(str(payload["updated_at"])),
            metadata=dict(payload.get("metadata") or {}),
            results={
                str(key): ExecutionResult.from_payload(value)
                for key, value in (payload.get("results") or {}).items()
            },
        )


def _unit_to_payload(unit: WorkflowUnit) -> dict[str, Any]:
    request = unit.request
    return {
        "id": unit.id,
        "name": unit.name,
        "dependencies": list(unit.dependencies),
        "estimated_minutes": unit.estimated_minutes,
        "context": dict(unit.context),
        "metadata": dict(unit.metadata),
        "request": (
            {
                "content": request.content,
                "context": dict(request.context),
                "request_id": request.request_id,
                "session_id": request.session_id,
                "user_id": request.user_id,
                "project_id": request.project_id,
            }
            if request is not None
            else None
        ),
    }


def _unit_from_payload(payload: dict[str, Any]) -> WorkflowUnit:
    request = payload.get("request")
    return WorkflowUnit(
        id=str(payload["id"]),
        name=str(payload.get("name", payload["id"])),
        dependencies=[str(item) for item in payload.get("dependencies", [])],
        estimated_minutes=int(payload.get("estimated_minutes", CUSTOM_UNIT_ESTIMATE_MINUTES)),
        context=dict(payload.get("context") or {}),
        metadata=dict(payload.get("metadata") or {}),
        request=(
            WorkRequest(
                content=str(request.get("content", "")),
                context=dict(request.get("context") or {}),
                request_id=str(request.get("request_id", "")),
                session_id=str(request.get("session_id", "")),
                user_id=str(request.get("user_id", "")),
                project_id=str(request.get("project_id", "")),
            )
            if isinstance(request, dict)
            else None
        ),
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_optional(value: object) -> datetime | None:
    return parse_timestamp(value) if isinstance(value, str) else None
