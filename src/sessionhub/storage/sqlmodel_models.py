"""SQLModel ORM tables for pattern storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel

from sessionhub.models import DEFAULT_PROJECT_ID, DEFAULT_USER_ID


class PatternObservationRow(SQLModel, table=True):
    """One recorded observation in the pattern-recognition store."""

    __tablename__ = "pattern_observations"  # type: ignore[bad-override]
    __table_args__ = (
        Index(
            "idx_pattern_observations_scope_type",
            "user_id",
            "project_id",
            "pattern_type",
        ),
    )

    observation_id: int | None = Field(default=None, primary_key=True)
    pattern_type: str = Field(index=True)
    pattern: str = Field(sa_column=Column(Text, nullable=False))
    session_id: str | None = Field(default=None, index=True)
    user_id: str = Field(default=DEFAULT_USER_ID)
    project_id: str = Field(default=DEFAULT_PROJECT_ID)
    complexity: float | None = None
    memory_usage: float | None = None
    split_recommended: bool | None = None
    metadata_json: str = Field(
        default="{}",
        sa_column=Column(Text, nullable=False, server_default="{}"),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class SessionPatternRow(SQLModel, table=True):
    """Learned session pattern keyed by complexity/memory bucket."""

    __tablename__ = "session_patterns"  # type: ignore[bad-override]

    pattern_key: str = Field(primary_key=True)
    pattern_type: str = Field(index=True)
    description: str
    frequency: int
    confidence: float = Field(index=True)
    payload_json: str = Field(sa_column=Column(Text, nullable=False))
    last_seen: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
