"""Shared models exchanged with the session registry and execution phases."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_USER_ID = "default_user"
DEFAULT_PROJECT_ID = "default_project"


class SessionStatus(str, Enum):
    """Status values reported back to the session registry."""

    PLANNING = "planning"
    EXECUTING = "executing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ExecutionStatus(str, Enum):
    """Outcome of one execution phase."""

    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"


@dataclass(frozen=True, slots=True)
class WorkRequest:
    """Immutable unit of requested work."""

    content: str
    context: dict[str, Any] = field(default_factory=dict)
    request_id: str = ""
    session_id: str = ""
    user_id: str = DEFAULT_USER_ID
    project_id: str = DEFAULT_PROJECT_ID


@dataclass(slots=True)
class WorkSession:
    """Work item handed over by the session registry."""

    id: str
    name: str
    user_id: str = DEFAULT_USER_ID
    project_id: str = DEFAULT_PROJECT_ID
    description: str = ""
    request: WorkRequest | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ExecutionMetrics:
    """Timing and task counters of an execution phase."""

    duration_seconds: float = 0.0
    tasks_completed: int = 0
    tasks_failed: int = 0


@dataclass(slots=True)
class ExecutionResult:
    """What an execution phase produced."""

    session_id: str
    status: ExecutionStatus
    deliverables: list[str] = field(default_factory=list)
    logs: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    metrics: ExecutionMetrics = field(default_factory=ExecutionMetrics)
    outputs: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS

    def to_payload(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "deliverables": list(self.deliverables),
            "logs": list(self.logs),
            "errors": list(self.errors),
            "metrics": {
                "duration_seconds": self.metrics.duration_seconds,
                "tasks_completed": self.metrics.tasks_completed,
                "tasks_failed": self.metrics.tasks_failed,
            },
            "outputs": dict(self.outputs),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ExecutionResult:
        metrics = payload.get("metrics") or {}
        return cls(
            session_id=str(payload["session_id"]),
            status=ExecutionStatus(str(payload["status"])),
            deliverables=[str(item) for item in payload.get("deliverables", [])],
            logs=[str(item) for item in payload.get("logs", [])],
            errors=[str(item) for item in payload.get("errors", [])],
            metrics=ExecutionMetrics(
                duration_seconds=float(metrics.get("duration_seconds", 0.0)),
                tasks_completed=int(metrics.get("tasks_completed", 0)),
                tasks_failed=int(metrics.get("tasks_failed", 0)),
            ),
            outputs=dict(payload.get("outputs") or {}),
        )
