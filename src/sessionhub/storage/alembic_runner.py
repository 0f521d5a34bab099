"""Schema migrations for the pattern database."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def _migration_config(db_path: Path) -> Config:
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config


def upgrade_head(db_path: Path) -> None:
    """Apply every pending pattern-store migration."""

    command.upgrade(_migration_config(db_path), "head")


def downgrade_base(db_path: Path) -> None:
    """Roll the pattern store back to an empty schema."""

    command.downgrade(_migration_config(db_path), "base")
