"""Periodic background auto-save of registered sessions."""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sessionhub.persistence.change_detection import ChangeDetector
from sessionhub.persistence.models import SessionMetadata
from sessionhub.persistence.store import SessionPersistence
from sessionhub.timestamps import utc_now

logger = logging.getLogger(__name__)

AUTO_SAVE_PHASE = "auto-save"
_MAX_STATUS_ERRORS = 10


@dataclass(slots=True)
class TrackedSession:
    """Session registered for auto-save."""

    session_id: str
    state: dict[str, Any]
    metadata: SessionMetadata
    registered_at: datetime
    last_saved_at: datetime | None = None
    save_count: int = 0


@dataclass(slots=True)
class AutoSaveStatus:
    """Observable state of the auto-save loop."""

    is_running: bool
    is_paused: bool
    last_save_time: datetime | None
    next_save_time: datetime | None
    save_count: int
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AutoSaveTickResult:
    """Outcome of a single auto-save pass."""

    saved: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    retried: list[str] = field(default_factory=list)


class AutoSaveService:
    """Save every changed session on a fixed interval.

    Each tick first retries the sessions that failed in the previous tick
    (one retry each), then saves every remaining session whose state differs
    from its last snapshot. Per-session saves run concurrently and a failing
    save never affects the others. Ticks never overlap.
    """

    def __init__(
        self,
        *,
        persistence: SessionPersistence,
        change_detector: ChangeDetector | None = None,
        interval_seconds: float = 30.0,
        enabled: bool = True,
        checkpoint_on_save: bool = True,
    ) -> None:
        self.persistence = persistence
        self.change_detector = change_detector or ChangeDetector()
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self.checkpoint_on_save = checkpoint_on_save

        self._sessions: dict[str, TrackedSession] = {}
        self._retry_queue: list[str] = []
        self._errors: list[str] = []
        self._save_count = 0
        self._last_save_time: datetime | None = None
        self._next_save_time: datetime | None = None
        self._paused = False
        self._tick_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def register_session(
        self,
        session_id: str,
        state: dict[str, Any],
        metadata: SessionMetadata | None = None,
    ) -> None:
        self._sessions[session_id] = TrackedSession(
            session_id=session_id,
            state=copy.deepcopy(state),
            metadata=metadata or SessionMetadata(phase=AUTO_SAVE_PHASE),
            registered_at=utc_now(),
        )
        logger.debug("Registered session %s for auto-save", session_id)

    def update_session(
        self,
        session_id: str,
        state: dict[str, Any],
        metadata: SessionMetadata | None = None,
    ) -> None:
        """Replace the tracked state; unknown sessions are registered."""

        tracked = self._sessions.get(session_id)
        if tracked is None:
            self.register_session(session_id, state, metadata)
            return
        tracked.state = copy.deepcopy(state)
        if metadata is not None:
            tracked.metadata = metadata

    def unregister_session(self, session_id: str) -> bool:
        tracked = self._sessions.pop(session_id, None)
        if session_id in self._retry_queue:
            self._retry_queue.remove(session_id)
        self.change_detector.remove_snapshot(session_id)
        if tracked is not None:
            logger.debug("Unregistered session %s from auto-save", session_id)
        return tracked is not None

    async def start(self) -> None:
        """Launch the background loop task."""

        if not self.enabled:
            logger.info("Auto-save is disabled; not starting")
            return
        if self._task is not None and not self._task.done():
            return
        self._stop_event = asyncio.Event()
        self._tick_lock = asyncio.Lock()
        self._paused = False
        self._next_save_time = utc_now() + timedelta(seconds=self.interval_seconds)
        self._task = asyncio.create_task(self._run_loop(), name="sessionhub-autosave")
        logger.info("Auto-save started (interval=%.1fs)", self.interval_seconds)

    async def stop(self) -> None:
        """Signal stop and wait for an in-flight tick to finish."""

        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        self._next_save_time = None
        logger.info("Auto-save stopped after %d save(s)", self._save_count)

    def pause(self) -> None:
        self._paused = True
        logger.info("Auto-save paused")

    def resume(self) -> None:
        self._paused = False
        logger.info("Auto-save resumed")

    async def tick(self) -> AutoSaveTickResult:
        """Run one auto-save pass."""

        async with self._tick_lock:
            result = AutoSaveTickResult()

            retry_ids = [sid for sid in self._retry_queue if sid in self._sessions]
            self._retry_queue.clear()
            if retry_ids:
                outcomes = await asyncio.gather(
                    *(self._save(self._sessions[sid]) for sid in retry_ids),
                )
                for session_id, ok in zip(retry_ids, outcomes, strict=True):
                    (result.retried if ok else result.failed).append(session_id)
                    if not ok:
                        logger.warning("Retry of auto-save failed for session %s", session_id)

            handled = set(retry_ids)
            pending: list[TrackedSession] = []
            for session_id, tracked in list(self._sessions.items()):
                if session_id in handled:
                    continue
                if self.change_detector.has_changes(session_id, tracked.state):
                    pending.append(tracked)
                else:
                    result.unchanged.append(session_id)

            outcomes = await asyncio.gather(*(self._save(tracked) for tracked in pending))
            for tracked, ok in zip(pending, outcomes, strict=True):
                if ok:
                    result.saved.append(tracked.session_id)
                else:
                    result.failed.append(tracked.session_id)
                    self._retry_queue.append(tracked.session_id)
                    self.change_detector.remove_snapshot(tracked.session_id)

            if result.saved or result.retried:
                self._last_save_time = utc_now()
            if result.saved or result.failed or result.retried:
                logger.info(
                    "Auto-save tick: saved=%d retried=%d failed=%d unchanged=%d",
                    len(result.saved),
                    len(result.retried),
                    len(result.failed),
                    len(result.unchanged),
                )
            return result

    async def force_save(self, session_id: str | None = None) -> list[str]:
        """Save one session (or all) immediately, regardless of changes."""

        async with self._tick_lock:
            if session_id is not None:
                tracked = self._sessions.get(session_id)
                if tracked is None:
                    raise KeyError(f"Session {session_id} is not registered for auto-save")
                targets = [tracked]
            else:
                targets = list(self._sessions.values())
            outcomes = await asyncio.gather(*(self._save(tracked) for tracked in targets))
            saved = [
                tracked.session_id for tracked, ok in zip(targets, outcomes, strict=True) if ok
            ]
            if saved:
                self._last_save_time = utc_now()
            return saved

    def get_status(self) -> AutoSaveStatus:
        return AutoSaveStatus(
            is_running=self._task is not None and not self._task.done(),
            is_paused=self._paused,
            last_save_time=self._last_save_time,
            next_save_time=self._next_save_time,
            save_count=self._save_count,
            errors=list(self._errors),
        )

    def get_active_sessions_summary(self) -> list[dict[str, Any]]:
        return [
            {
                "session_id": tracked.session_id,
                "phase": tracked.metadata.phase,
                "progress": tracked.metadata.progress,
                "registered_at": tracked.registered_at,
                "last_saved_at": tracked.last_saved_at,
                "save_count": tracked.save_count,
                "pending_retry": tracked.session_id in self._retry_queue,
            }
            for tracked in self._sessions.values()
        ]

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                pass
            else:
                break
            self._next_save_time = utc_now() + timedelta(seconds=self.interval_seconds)
            if self._paused:
                continue
            await self.tick()

    async def _save(self, tracked: TrackedSession) -> bool:
        state = copy.deepcopy(tracked.state)
        metadata = copy.copy(tracked.metadata)
        try:
            await asyncio.to_thread(self._write, tracked.session_id, state, metadata)
        except (OSError, TypeError, ValueError) as error:
            message = f"{tracked.session_id}: {error}"
            self._errors = [*self._errors, message][-_MAX_STATUS_ERRORS:]
            logger.error("Auto-save failed for session %s: %s", tracked.session_id, error)
            return False
        self.change_detector.create_snapshot(tracked.session_id, state)
        tracked.last_saved_at = utc_now()
        tracked.save_count += 1
        self._save_count += 1
        return True

    def _write(self, session_id: str, state: dict[str, Any], metadata: SessionMetadata) -> None:
        checkpoint_id = None
        if self.checkpoint_on_save:
            checkpoint = self.persistence.create_checkpoint(
                session_id,
                state,
                metadata.phase or AUTO_SAVE_PHASE,
            )
            checkpoint_id = checkpoint.id
        self.persistence.persist_session(
            session_id,
            state,
            metadata=metadata,
            checkpoint_id=checkpoint_id,
        )
