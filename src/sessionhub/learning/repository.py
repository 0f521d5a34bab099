"""Pattern storage backed by SQLModel + SQLite."""

from __future__ import annotations

import json
from pathlib import Path

from sqlmodel import Session, col, select

from sessionhub.learning.models import PatternObservation, SessionPattern
from sessionhub.storage.alembic_runner import upgrade_head
from sessionhub.storage.engine import build_sqlite_engine
from sessionhub.storage.sqlmodel_models import PatternObservationRow, SessionPatternRow
from sessionhub.timestamps import as_utc, utc_now


class PatternRepository:
    """Pattern-recognition store and learned-pattern table.

    Implements the ``PatternStore`` protocol consumed by the complexity
    analyzer and persists ``SessionPattern`` records for the learning system.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def record_pattern(self, observation: PatternObservation) -> None:
        with Session(self.engine) as session:
            session.add(
                PatternObservationRow(
                    pattern_type=observation.pattern_type,
                    pattern=observation.pattern,
                    session_id=observation.session_id,
                    user_id=observation.user_id,
                    project_id=observation.project_id,
                    complexity=observation.complexity,
                    memory_usage=observation.memory_usage,
                    split_recommended=observation.split_recommended,
                    metadata_json=json.dumps(observation.metadata, sort_keys=True, default=str),
                    created_at=observation.created_at or utc_now(),
                ),
            )
            session.commit()

    def get_relevant_patterns(
        self,
        *,
        session_id: str | None,
        user_id: str,
        project_id: str,
        pattern_type: str | None = None,
        limit: int = 100,
    ) -> list[PatternObservation]:
        """Newest observations of the same user/project.

        ``session_id`` is accepted for the store contract; observations are
        shared across sessions of one user/project scope.
        """

        statement = select(PatternObservationRow).where(
            PatternObservationRow.user_id == user_id,
            PatternObservationRow.project_id == project_id,
        )
        if pattern_type is not None:
            statement = statement.where(PatternObservationRow.pattern_type == pattern_type)
        statement = statement.order_by(
            col(PatternObservationRow.created_at).desc(),
            col(PatternObservationRow.observation_id).desc(),
        ).limit(limit)
        with Session(self.engine) as session:
            rows = session.exec(statement).all()
        return [_to_observation(row) for row in rows]

    def upsert_pattern(self, pattern: SessionPattern) -> None:
        now = utc_now()
        payload_json = json.dumps(pattern.to_payload(), sort_keys=True)
        with Session(self.engine) as session:
            row = session.get(SessionPatternRow, pattern.key)
            if row is None:
                row = SessionPatternRow(
                    pattern_key=pattern.key,
                    pattern_type=pattern.type.value,
                    description=pattern.description,
                    frequency=pattern.frequency,
                    confidence=pattern.confidence,
                    payload_json=payload_json,
                    last_seen=pattern.last_seen,
                    created_at=now,
                    updated_at=now,
                )
            else:
                row.pattern_type = pattern.type.value
                row.description = pattern.description
                row.frequency = pattern.frequency
                row.confidence = pattern.confidence
                row.payload_json = payload_json
                row.last_seen = pattern.last_seen
                row.updated_at = now
            session.add(row)
            session.commit()

    def list_patterns(self) -> list[SessionPattern]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(SessionPatternRow).order_by(col(SessionPatternRow.pattern_key).asc()),
            ).all()
        return [SessionPattern.from_payload(json.loads(row.payload_json)) for row in rows]

    def delete_pattern(self, pattern_key: str) -> bool:
        with Session(self.engine) as session:
            row = session.get(SessionPatternRow, pattern_key)
            if row is None:
                return False
            session.delete(row)
            session.commit()
        return True

    def count_observations(self) -> int:
        with Session(self.engine) as session:
            return len(session.exec(select(PatternObservationRow.observation_id)).all())


def _to_observation(row: PatternObservationRow) -> PatternObservation:
    return PatternObservation(
        pattern_type=row.pattern_type,
        pattern=row.pattern,
        session_id=row.session_id,
        user_id=row.user_id,
        project_id=row.project_id,
        complexity=row.complexity,
        memory_usage=row.memory_usage,
        split_recommended=row.split_recommended,
        metadata=json.loads(row.metadata_json or "{}"),
        created_at=as_utc(row.created_at),
    )
