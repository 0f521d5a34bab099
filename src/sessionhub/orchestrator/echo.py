"""Local deterministic unit executor for CLI demos and integration tests."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from typing import Any

from sessionhub.models import ExecutionMetrics, ExecutionResult, ExecutionStatus
from sessionhub.orchestrator.models import WorkflowUnit


class EchoExecutor:
    """Echo each unit's request back as its deliverable.

    Units whose id or name is in ``fail_units`` always fail; ``flaky_units``
    maps a unit id to the number of leading attempts that fail before the
    unit succeeds.
    """

    def __init__(
        self,
        *,
        fail_units: Iterable[str] = (),
        flaky_units: dict[str, int] | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.fail_units = set(fail_units)
        self.flaky_units = dict(flaky_units or {})
        self.delay_seconds = delay_seconds
        self.calls: list[str] = []
        self.contexts: dict[str, dict[str, Any]] = {}

    async def run(self, unit: WorkflowUnit, context: dict[str, Any]) -> ExecutionResult:
        started = time.monotonic()
        self.calls.append(unit.id)
        self.contexts[unit.id] = dict(context)
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        if {unit.id, unit.name} & self.fail_units or self._consume_flaky(unit.id):
            return ExecutionResult(
                session_id=unit.id,
                status=ExecutionStatus.FAILURE,
                logs=[f"echo: {unit.name}"],
                errors=[f"execution failed for {unit.name}"],
                metrics=ExecutionMetrics(
                    duration_seconds=time.monotonic() - started,
                    tasks_failed=1,
                ),
            )

        text = unit.request.content.strip() if unit.request is not None else ""
        return ExecutionResult(
            session_id=unit.id,
            status=ExecutionStatus.SUCCESS,
            deliverables=[text or f"{unit.name} output"],
            logs=[f"echo: {unit.name}"],
            metrics=ExecutionMetrics(
                duration_seconds=time.monotonic() - started,
                tasks_completed=1,
            ),
            outputs={
                "summary": f"{unit.name} done",
                "context_keys": sorted(context),
            },
        )

    def _consume_flaky(self, unit_id: str) -> bool:
        remaining = self.flaky_units.get(unit_id, 0)
        if remaining <= 0:
            return False
        self.flaky_units[unit_id] = remaining - 1
        return True
