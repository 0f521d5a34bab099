"""Workflow lifecycle notifications delivered to registered observers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class WorkflowEvent(str, Enum):
    """Lifecycle events of workflows and their units."""

    CREATED = "workflow:created"
    STARTED = "workflow:started"
    PAUSED = "workflow:paused"
    RESUMED = "workflow:resumed"
    CANCELLED = "workflow:cancelled"
    COMPLETED = "workflow:completed"
    FAILED = "workflow:failed"
    PROGRESS = "workflow:progress"
    UNIT_STARTING = "unit:starting"
    UNIT_COMPLETED = "unit:completed"
    UNIT_FAILED = "unit:failed"
    UNIT_RETRYING = "unit:retrying"


@dataclass(slots=True)
class WorkflowNotification:
    """Payload handed to observers."""

    event: WorkflowEvent
    workflow_id: str
    unit_id: str | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


WorkflowObserver = Callable[[WorkflowNotification], None]


class ObserverRegistry:
    """Explicit observer list; a failing observer never breaks the workflow."""

    def __init__(self) -> None:
        self._observers: list[WorkflowObserver] = []

    def subscribe(self, observer: WorkflowObserver) -> Callable[[], None]:
        """Register ``observer`` and return a callable that unregisters it."""

        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def notify(self, notification: WorkflowNotification) -> None:
        for observer in list(self._observers):
            try:
                observer(notification)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Workflow observer failed on %s for %s",
                    notification.event.value,
                    notification.workflow_id,
                )
