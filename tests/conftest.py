"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path

import pytest

from sessionhub.config import PersistenceSettings, Settings
from sessionhub.learning.repository import PatternRepository
from sessionhub.persistence.store import SessionPersistence


class SleepRecorder:
    """Awaitable stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture()
def fake_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def persistence(tmp_path: Path) -> SessionPersistence:
    return SessionPersistence(tmp_path / "data", max_checkpoints_per_session=10)


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[PatternRepository]:
    repository = PatternRepository(tmp_path / "patterns.db")
    repository.init_schema()
    yield repository
    repository.close()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Default settings writing every artifact under ``tmp_path``."""

    defaults = Settings()
    return replace(
        defaults,
        db_path=tmp_path / "patterns.db",
        persistence=PersistenceSettings(data_dir=tmp_path / "data"),
    )
