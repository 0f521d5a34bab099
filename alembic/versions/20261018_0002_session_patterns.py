"""Create learned session pattern table."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "session_patterns",
        sa.Column("pattern_key", sa.String(), nullable=False),
        sa.Column("pattern_type", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("frequency", sa.Integer(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("pattern_key"),
    )
    op.create_index("ix_session_patterns_pattern_type", "session_patterns", ["pattern_type"])
    op.create_index("ix_session_patterns_confidence", "session_patterns", ["confidence"])
    op.create_index("ix_session_patterns_last_seen", "session_patterns", ["last_seen"])


def downgrade() -> None:
    op.drop_index("ix_session_patterns_last_seen", table_name="session_patterns")
    op.drop_index("ix_session_patterns_confidence", table_name="session_patterns")
    op.drop_index("ix_session_patterns_pattern_type", table_name="session_patterns")
    op.drop_table("session_patterns")
