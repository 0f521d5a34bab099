"""Typed models for session blobs, checkpoints and state snapshots."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sessionhub.timestamps import parse_timestamp


@dataclass(slots=True)
class SessionMetadata:
    """Progress metadata stored next to a session blob."""

    phase: str = "initial"
    progress: float = 0.0
    documents_count: int = 0
    last_active: datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "phase": self.phase,
            "progress": self.progress,
            "documents_count": self.documents_count,
            "last_active": self.last_active.isoformat() if self.last_active else None,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SessionMetadata:
        last_active = payload.get("last_active")
        return cls(
            phase=str(payload.get("phase", "initial")),
            progress=float(payload.get("progress", 0.0)),
            documents_count=int(payload.get("documents_count", 0)),
            last_active=parse_timestamp(last_active) if isinstance(last_active, str) else None,
        )


@dataclass(slots=True)
class PersistedSession:
    """Durable copy of a session's state."""

    id: str
    state: dict[str, Any]
    timestamp: datetime
    checkpoint_id: str | None = None
    metadata: SessionMetadata = field(default_factory=SessionMetadata)

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state,
            "timestamp": self.timestamp.isoformat(),
            "checkpoint_id": self.checkpoint_id,
            "metadata": self.metadata.to_payload(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PersistedSession:
        metadata = payload.get("metadata")
        return cls(
            id=str(payload["id"]),
            state=dict(payload.get("state") or {}),
            timestamp=parse_timestamp(str(payload["timestamp"])),
            checkpoint_id=payload.get("checkpoint_id"),
            metadata=SessionMetadata.from_payload(metadata if isinstance(metadata, dict) else {}),
        )


@dataclass(slots=True)
class Checkpoint:
    """Restorable state capture of one session at a named phase.

    ``sequence`` grows monotonically per session and breaks timestamp ties,
    so "newest" is always well defined.
    """

    id: str
    session_id: str
    phase: str
    state: dict[str, Any]
    timestamp: datetime
    can_restore: bool = True
    sequence: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "phase": self.phase,
            "state": self.state,
            "timestamp": self.timestamp.isoformat(),
            "can_restore": self.can_restore,
            "sequence": self.sequence,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Checkpoint:
        return cls(
            id=str(payload["id"]),
            session_id=str(payload["session_id"]),
            phase=str(payload["phase"]),
            state=dict(payload.get("state") or {}),
            timestamp=parse_timestamp(str(payload["timestamp"])),
            can_restore=bool(payload.get("can_restore", True)),
            sequence=int(payload.get("sequence", 0)),
        )

    def restored_state(self) -> dict[str, Any]:
        """Independent copy of the captured state."""

        return copy.deepcopy(self.state)


@dataclass(slots=True)
class PersistenceStats:
    """Aggregate numbers over the blob store."""

    total_sessions: int
    total_checkpoints: int
    storage_bytes: int
    oldest_session: datetime | None
    newest_session: datetime | None


@dataclass(slots=True)
class StateSnapshot:
    """Checksummed capture of a session state used for change detection."""

    session_id: str
    checksum: str
    timestamp: datetime
    size: int
    field_checksums: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class ChangeDetectionResult:
    """Field-level diff between a state and the last snapshot."""

    has_changes: bool
    changed_fields: list[str] = field(default_factory=list)
    added_fields: list[str] = field(default_factory=list)
    removed_fields: list[str] = field(default_factory=list)
    total_changes: int = 0
    change_percentage: float = 0.0
