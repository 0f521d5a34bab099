"""Checksum-based change detection over session state."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from sessionhub.persistence.models import ChangeDetectionResult, StateSnapshot
from sessionhub.timestamps import utc_now

logger = logging.getLogger(__name__)

DEFAULT_MAX_SNAPSHOTS = 1_000


class ChangeDetector:
    """Remember the last snapshot per session and diff new states against it.

    Snapshots are kept in insertion order; a refreshed snapshot moves to the
    end, and the oldest one is evicted once ``max_snapshots`` is exceeded.
    """

    def __init__(self, *, max_snapshots: int = DEFAULT_MAX_SNAPSHOTS) -> None:
        self.max_snapshots = max_snapshots
        self._snapshots: dict[str, StateSnapshot] = {}

    def create_snapshot(self, session_id: str, state: dict[str, Any]) -> StateSnapshot:
        serialized = _serialize(state)
        snapshot = StateSnapshot(
            session_id=session_id,
            checksum=_digest(serialized),
            timestamp=utc_now(),
            size=len(serialized.encode("utf-8")),
            field_checksums={
                path: _digest(_serialize(value)) for path, value in flatten_state(state).items()
            },
        )
        self._snapshots.pop(session_id, None)
        self._snapshots[session_id] = snapshot
        self._evict()
        return snapshot

    def detect_changes(self, session_id: str, state: dict[str, Any]) -> ChangeDetectionResult:
        """Diff ``state`` against the last snapshot and record it when changed."""

        previous = self._snapshots.get(session_id)
        if previous is None:
            snapshot = self.create_snapshot(session_id, state)
            fields = sorted(snapshot.field_checksums)
            return ChangeDetectionResult(
                has_changes=True,
                added_fields=fields,
                total_changes=len(fields),
                change_percentage=100.0,
            )

        if _digest(_serialize(state)) == previous.checksum:
            return ChangeDetectionResult(has_changes=False)

        current = self.create_snapshot(session_id, state)
        before = previous.field_checksums
        after = current.field_checksums
        changed = sorted(path for path in after if path in before and before[path] != after[path])
        added = sorted(path for path in after if path not in before)
        removed = sorted(path for path in before if path not in after)
        total = len(changed) + len(added) + len(removed)
        universe = len(before.keys() | after.keys())
        percentage = round(total / universe * 100, 2) if universe else 100.0
        logger.debug(
            "Session %s changed: %d changed, %d added, %d removed",
            session_id,
            len(changed),
            len(added),
            len(removed),
        )
        return ChangeDetectionResult(
            has_changes=True,
            changed_fields=changed,
            added_fields=added,
            removed_fields=removed,
            total_changes=total,
            change_percentage=percentage,
        )

    def has_changes(self, session_id: str, state: dict[str, Any]) -> bool:
        """Quick whole-state comparison that does not touch the stored snapshot."""

        previous = self._snapshots.get(session_id)
        if previous is None:
            return True
        return _digest(_serialize(state)) != previous.checksum

    def get_last_snapshot(self, session_id: str) -> StateSnapshot | None:
        return self._snapshots.get(session_id)

    def remove_snapshot(self, session_id: str) -> bool:
        return self._snapshots.pop(session_id, None) is not None

    def session_ids(self) -> list[str]:
        return list(self._snapshots)

    def clear(self) -> None:
        self._snapshots.clear()

    def get_statistics(self) -> dict[str, Any]:
        snapshots = list(self._snapshots.values())
        return {
            "total_snapshots": len(snapshots),
            "total_size": sum(item.size for item in snapshots),
            "average_size": (
                round(sum(item.size for item in snapshots) / len(snapshots), 2)
                if snapshots
                else 0.0
            ),
            "oldest_snapshot": min((item.timestamp for item in snapshots), default=None),
            "newest_snapshot": max((item.timestamp for item in snapshots), default=None),
        }

    def get_memory_usage(self) -> int:
        """Approximate bytes held by snapshots."""

        total = 0
        for snapshot in self._snapshots.values():
            total += snapshot.size + len(snapshot.checksum)
            total += sum(
                len(path) + len(digest) for path, digest in snapshot.field_checksums.items()
            )
        return total

    def _evict(self) -> None:
        while len(self._snapshots) > self.max_snapshots:
            oldest = next(iter(self._snapshots))
            del self._snapshots[oldest]
            logger.debug("Evicted snapshot of session %s", oldest)


def flatten_state(state: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested mappings into dot paths; lists and scalars are leaves."""

    flat: dict[str, Any] = {}
    for key, value in state.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict) and value:
            flat.update(flatten_state(value, path))
        else:
            flat[path] = value
    return flat


def _serialize(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def _digest(serialized: str) -> str:
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()
