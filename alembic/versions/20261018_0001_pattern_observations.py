"""Create pattern-recognition observation store."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "pattern_observations",
        sa.Column("observation_id", sa.Integer(), nullable=False),
        sa.Column("pattern_type", sa.String(), nullable=False),
        sa.Column("pattern", sa.Text(), nullable=False),
        sa.Column("session_id", sa.String(), nullable=True),
        sa.Column("user_id", sa.String(), server_default="default_user", nullable=False),
        sa.Column("project_id", sa.String(), server_default="default_project", nullable=False),
        sa.Column("complexity", sa.Float(), nullable=True),
        sa.Column("memory_usage", sa.Float(), nullable=True),
        sa.Column("split_recommended", sa.Boolean(), nullable=True),
        sa.Column("metadata_json", sa.Text(), server_default="{}", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("observation_id"),
    )
    op.create_index(
        "ix_pattern_observations_pattern_type",
        "pattern_observations",
        ["pattern_type"],
    )
    op.create_index(
        "ix_pattern_observations_session_id",
        "pattern_observations",
        ["session_id"],
    )
    op.create_index(
        "idx_pattern_observations_scope_type",
        "pattern_observations",
        ["user_id", "project_id", "pattern_type"],
    )


def downgrade() -> None:
    op.drop_index("idx_pattern_observations_scope_type", table_name="pattern_observations")
    op.drop_index("ix_pattern_observations_session_id", table_name="pattern_observations")
    op.drop_index("ix_pattern_observations_pattern_type", table_name="pattern_observations")
    op.drop_table("pattern_observations")
