"""File-backed session blobs and checkpoints with retention."""

from __future__ import annotations

import copy
import logging
import shutil
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

from sessionhub.persistence.documents import read_document, write_document
from sessionhub.persistence.models import (
    Checkpoint,
    PersistedSession,
    PersistenceStats,
    SessionMetadata,
)
from sessionhub.timestamps import utc_now

logger = logging.getLogger(__name__)

_SESSIONS_DIR = "sessions"
_CHECKPOINTS_DIR = "checkpoints"


class SessionPersistence:
    """Blob store for session state and per-session checkpoints."""

    def __init__(
        self,
        data_dir: Path,
        *,
        max_checkpoints_per_session: int = 10,
        retention_days: int = 30,
    ) -> None:
        self.data_dir = data_dir
        self.max_checkpoints_per_session = max_checkpoints_per_session
        self.retention_days = retention_days

    @property
    def sessions_dir(self) -> Path:
        return self.data_dir / _SESSIONS_DIR

    @property
    def checkpoints_dir(self) -> Path:
        return self.data_dir / _CHECKPOINTS_DIR

    def persist_session(
        self,
        session_id: str,
        state: dict[str, Any],
        *,
        metadata: SessionMetadata | None = None,
        checkpoint_id: str | None = None,
    ) -> PersistedSession:
        """Write the latest state of a session, replacing the previous blob."""

        now = utc_now()
        session_metadata = copy.copy(metadata) if metadata is not None else SessionMetadata()
        session_metadata.last_active = now
        persisted = PersistedSession(
            id=session_id,
            state=copy.deepcopy(state),
            timestamp=now,
            checkpoint_id=checkpoint_id,
            metadata=session_metadata,
        )
        write_document(self._session_path(session_id), persisted.to_payload())
        logger.debug("Persisted session %s (phase=%s)", session_id, session_metadata.phase)
        return persisted

    def restore_session(self, session_id: str) -> PersistedSession | None:
        """Load the latest blob of a session, or ``None`` when never persisted."""

        path = self._session_path(session_id)
        if not path.exists():
            return None
        return PersistedSession.from_payload(read_document(path))

    def create_checkpoint(
        self,
        session_id: str,
        state: dict[str, Any],
        phase: str,
        *,
        checkpoint_id: str | None = None,
        can_restore: bool = True,
    ) -> Checkpoint:
        """Capture ``state`` as a new checkpoint and enforce the retention cap.

        Creating a checkpoint with an id that already exists returns the stored
        checkpoint unchanged.
        """

        if checkpoint_id is not None:
            existing = self.get_checkpoint(session_id, checkpoint_id)
            if existing is not None:
                return existing

        now = utc_now()
        existing_checkpoints = self._load_checkpoints(session_id)
        sequence = max((item.sequence for item in existing_checkpoints), default=0) + 1
        checkpoint = Checkpoint(
            id=checkpoint_id or f"ckpt_{int(now.timestamp() * 1000)}_{uuid4().hex[:8]}",
            session_id=session_id,
            phase=phase,
            state=copy.deepcopy(state),
            timestamp=now,
            can_restore=can_restore,
            sequence=sequence,
        )
        write_document(self._checkpoint_path(session_id, checkpoint.id), checkpoint.to_payload())
        logger.info(
            "Checkpoint %s created for session %s (phase=%s)",
            checkpoint.id,
            session_id,
            phase,
        )
        self._enforce_retention(session_id, [*existing_checkpoints, checkpoint])
        return checkpoint

    def get_checkpoint(self, session_id: str, checkpoint_id: str) -> Checkpoint | None:
        path = self._checkpoint_path(session_id, checkpoint_id)
        if not path.exists():
            return None
        return self._read_checkpoint(path)

    def get_checkpoints(self, session_id: str) -> list[Checkpoint]:
        """Checkpoints of a session, newest first."""

        return _newest_first(self._load_checkpoints(session_id))

    def get_latest_checkpoint(self, session_id: str) -> Checkpoint | None:
        checkpoints = self.get_checkpoints(session_id)
        return checkpoints[0] if checkpoints else None

    def restore_from_checkpoint(
        self,
        session_id: str,
        checkpoint_id: str,
    ) -> dict[str, Any] | None:
        """State captured by a checkpoint, or ``None`` when missing or not restorable."""

        checkpoint = self.get_checkpoint(session_id, checkpoint_id)
        if checkpoint is None:
            logger.warning("Checkpoint %s not found for session %s", checkpoint_id, session_id)
            return None
        if not checkpoint.can_restore:
            logger.warning("Checkpoint %s is marked as not restorable", checkpoint_id)
            return None
        logger.info("Restored session %s from checkpoint %s", session_id, checkpoint_id)
        return checkpoint.restored_state()

    def list_sessions(self) -> list[str]:
        if not self.sessions_dir.exists():
            return []
        return sorted(path.stem for path in self.sessions_dir.glob("*.json"))

    def delete_session(self, session_id: str) -> bool:
        """Remove a session blob together with all of its checkpoints."""

        removed = False
        path = self._session_path(session_id)
        if path.exists():
            path.unlink()
            removed = True
        checkpoint_dir = self.checkpoints_dir / session_id
        if checkpoint_dir.exists():
            shutil.rmtree(checkpoint_dir)
            removed = True
        if removed:
            logger.info("Deleted session %s", session_id)
        return removed

    def cleanup_old_sessions(self, *, now: datetime | None = None) -> int:
        """Delete sessions not persisted within the retention window."""

        cutoff = (now or utc_now()) - timedelta(days=self.retention_days)
        deleted = 0
        for session_id in self.list_sessions():
            session = self.restore_session(session_id)
            if session is not None and session.timestamp < cutoff and self.delete_session(
                session_id,
            ):
                deleted += 1
        if deleted:
            logger.info("Cleaned up %d session(s) older than %d days", deleted, self.retention_days)
        return deleted

    def get_statistics(self) -> PersistenceStats:
        timestamps: list[datetime] = []
        storage_bytes = 0
        for session_id in self.list_sessions():
            path = self._session_path(session_id)
            storage_bytes += path.stat().st_size
            session = self.restore_session(session_id)
            if session is not None:
                timestamps.append(session.timestamp)

        total_checkpoints = 0
        if self.checkpoints_dir.exists():
            for path in self.checkpoints_dir.glob("*/*.json"):
                total_checkpoints += 1
                storage_bytes += path.stat().st_size

        return PersistenceStats(
            total_sessions=len(timestamps),
            total_checkpoints=total_checkpoints,
            storage_bytes=storage_bytes,
            oldest_session=min(timestamps) if timestamps else None,
            newest_session=max(timestamps) if timestamps else None,
        )

    def _load_checkpoints(self, session_id: str) -> list[Checkpoint]:
        checkpoint_dir = self.checkpoints_dir / _safe_name(session_id)
        if not checkpoint_dir.exists():
            return []
        loaded = (self._read_checkpoint(path) for path in sorted(checkpoint_dir.glob("*.json")))
        return [checkpoint for checkpoint in loaded if checkpoint is not None]

    @staticmethod
    def _read_checkpoint(path: Path) -> Checkpoint | None:
        try:
            return Checkpoint.from_payload(read_document(path))
        except (OSError, KeyError, TypeError, ValueError) as error:
            logger.warning("Skipping unreadable checkpoint %s: %s", path, error)
            return None

    def _enforce_retention(self, session_id: str, checkpoints: list[Checkpoint]) -> None:
        for stale in _newest_first(checkpoints)[self.max_checkpoints_per_session :]:
            self._checkpoint_path(session_id, stale.id).unlink(missing_ok=True)
            logger.debug("Evicted checkpoint %s of session %s", stale.id, session_id)

    def _session_path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{_safe_name(session_id)}.json"

    def _checkpoint_path(self, session_id: str, checkpoint_id: str) -> Path:
        return self.checkpoints_dir / _safe_name(session_id) / f"{_safe_name(checkpoint_id)}.json"


def _newest_first(checkpoints: list[Checkpoint]) -> list[Checkpoint]:
    return sorted(checkpoints, key=lambda item: (item.sequence, item.timestamp), reverse=True)


def _safe_name(value: str) -> str:
    if not value or "/" in value or "\\" in value or value in {".", ".."}:
        raise ValueError(f"Invalid storage identifier: {value!r}")
    return value
