from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import allure
import pytest

from sessionhub.persistence.models import SessionMetadata
from sessionhub.persistence.store import SessionPersistence
from sessionhub.timestamps import utc_now

pytestmark = [
    allure.epic("Session Persistence"),
    allure.feature("Checkpoint Store"),
]


def test_persist_and_restore_session(persistence: SessionPersistence) -> None:
    persistence.persist_session(
        "s1",
        {"documents": ["a", "b"], "nested": {"k": 1}},
        metadata=SessionMetadata(phase="collecting", progress=0.5, documents_count=2),
    )

    restored = persistence.restore_session("s1")

    assert restored is not None
    assert restored.state == {"documents": ["a", "b"], "nested": {"k": 1}}
    assert restored.metadata.phase == "collecting"
    assert restored.metadata.documents_count == 2
    assert restored.metadata.last_active is not None
    assert persistence.restore_session("missing") is None


def test_retention_keeps_newest_checkpoints(tmp_path: Path) -> None:
    persistence = SessionPersistence(tmp_path, max_checkpoints_per_session=3)
    created = [
        persistence.create_checkpoint("s1", {"step": index}, f"phase-{index}")
        for index in range(4)
    ]

    checkpoints = persistence.get_checkpoints("s1")

    assert [item.id for item in checkpoints] == [item.id for item in reversed(created[1:])]
    assert [item.sequence for item in checkpoints] == [4, 3, 2]
    assert persistence.get_checkpoint("s1", created[0].id) is None
    assert persistence.get_latest_checkpoint("s1") == checkpoints[0]


def test_create_checkpoint_with_existing_id_is_idempotent(
    persistence: SessionPersistence,
) -> None:
    first = persistence.create_checkpoint("s1", {"v": 1}, "build", checkpoint_id="ckpt_fixed")
    second = persistence.create_checkpoint("s1", {"v": 2}, "other", checkpoint_id="ckpt_fixed")

    assert second == first
    assert len(persistence.get_checkpoints("s1")) == 1
    assert persistence.restore_from_checkpoint("s1", "ckpt_fixed") == {"v": 1}


def test_restore_returns_independent_copy(persistence: SessionPersistence) -> None:
    checkpoint = persistence.create_checkpoint("s1", {"items": [1, 2]}, "build")

    restored = persistence.restore_from_checkpoint("s1", checkpoint.id)
    assert restored is not None
    restored["items"].append(3)

    assert persistence.restore_from_checkpoint("s1", checkpoint.id) == {"items": [1, 2]}


def test_restore_missing_or_unrestorable_checkpoint_returns_none(
    persistence: SessionPersistence,
) -> None:
    locked = persistence.create_checkpoint("s1", {"v": 1}, "locked", can_restore=False)

    assert persistence.restore_from_checkpoint("s1", "nope") is None
    assert persistence.restore_from_checkpoint("s1", locked.id) is None


def test_delete_session_removes_blob_and_checkpoints(persistence: SessionPersistence) -> None:
    persistence.persist_session("s1", {"v": 1})
    persistence.create_checkpoint("s1", {"v": 1}, "build")

    assert persistence.delete_session("s1") is True
    assert persistence.restore_session("s1") is None
    assert persistence.get_checkpoints("s1") == []
    assert persistence.delete_session("s1") is False


def test_cleanup_old_sessions_uses_retention_window(tmp_path: Path) -> None:
    persistence = SessionPersistence(tmp_path, retention_days=30)
    persistence.persist_session("old", {"v": 1})

    assert persistence.cleanup_old_sessions() == 0
    removed = persistence.cleanup_old_sessions(now=utc_now() + timedelta(days=31))

    assert removed == 1
    assert persistence.list_sessions() == []


def test_statistics_count_sessions_and_checkpoints(persistence: SessionPersistence) -> None:
    persistence.persist_session("s1", {"v": 1})
    persistence.persist_session("s2", {"v": 2})
    persistence.create_checkpoint("s1", {"v": 1}, "build")

    stats = persistence.get_statistics()

    assert stats.total_sessions == 2
    assert stats.total_checkpoints == 1
    assert stats.storage_bytes > 0
    assert stats.oldest_session is not None
    assert stats.oldest_session <= stats.newest_session


def test_identifiers_with_path_separators_are_rejected(persistence: SessionPersistence) -> None:
    with pytest.raises(ValueError, match="Invalid storage identifier"):
        persistence.persist_session("../escape", {})


def test_unreadable_checkpoint_files_are_skipped(persistence: SessionPersistence) -> None:
    good = persistence.create_checkpoint("s1", {"v": 1}, "build")
    (persistence.checkpoints_dir / "s1" / "broken.json").write_text("{not json", encoding="utf-8")
    (persistence.checkpoints_dir / "s1" / "partial.json").write_text("{}", encoding="utf-8")

    assert [item.id for item in persistence.get_checkpoints("s1")] == [good.id]
    assert persistence.restore_from_checkpoint("s1", "broken") is None

    second = persistence.create_checkpoint("s1", {"v": 2}, "build")
    assert second.sequence == 2
