from pathlib import Path

import allure
from sqlalchemy import inspect, text

from sessionhub.learning.repository import PatternRepository
from sessionhub.storage.alembic_runner import downgrade_base

pytestmark = [
    allure.epic("Pattern Learning"),
    allure.feature("Pattern Storage"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    repository = PatternRepository(tmp_path / "migrations.db")
    repository.init_schema()

    with repository.engine.connect() as connection:
        version = connection.execute(
            text("SELECT version_num FROM alembic_version LIMIT 1"),
        ).scalar_one()
    assert version == "20261018_0002"

    tables = set(inspect(repository.engine).get_table_names())
    assert {"pattern_observations", "session_patterns"} <= tables
    repository.close()


def test_init_schema_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "twice.db"
    first = PatternRepository(db_path)
    first.init_schema()
    first.close()

    second = PatternRepository(db_path)
    second.init_schema()
    assert second.count_observations() == 0
    second.close()


def test_downgrade_base_drops_pattern_tables(tmp_path: Path) -> None:
    db_path = tmp_path / "downgrade.db"
    repository = PatternRepository(db_path)
    repository.init_schema()

    downgrade_base(db_path)

    tables = set(inspect(repository.engine).get_table_names())
    assert "pattern_observations" not in tables
    assert "session_patterns" not in tables
    repository.close()
