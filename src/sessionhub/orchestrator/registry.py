"""In-process session registry used by the CLI and the service facade."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sessionhub.models import ExecutionResult, SessionStatus
from sessionhub.timestamps import utc_now


@dataclass(slots=True)
class StatusUpdate:
    """One recorded status transition."""

    unit_id: str
    status: SessionStatus
    metadata: dict[str, Any]
    timestamp: datetime


@dataclass(slots=True)
class InMemorySessionRegistry:
    """Keep unit status history and final results in memory."""

    updates: list[StatusUpdate] = field(default_factory=list)
    results: dict[str, ExecutionResult] = field(default_factory=dict)

    def update_status(
        self,
        unit_id: str,
        status: SessionStatus,
        metadata: dict[str, Any],
    ) -> None:
        self.updates.append(
            StatusUpdate(
                unit_id=unit_id,
                status=status,
                metadata=dict(metadata),
                timestamp=utc_now(),
            ),
        )

    def complete(self, unit_id: str, result: ExecutionResult) -> None:
        self.results[unit_id] = result

    def status_of(self, unit_id: str) -> SessionStatus | None:
        for update in reversed(self.updates):
            if update.unit_id == unit_id:
                return update.status
        return None

    def history(self, unit_id: str) -> list[SessionStatus]:
        return [update.status for update in self.updates if update.unit_id == unit_id]
