"""Initial schema — the kv_entries table.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-19

Tables created:
  kv_entries
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── kv_entries ────────────────────────────────────────────
    op.create_table(
        "kv_entries",
        sa.Column("collection", sa.String(64),    nullable=False),
        sa.Column("key",        sa.LargeBinary(), nullable=False),
        sa.Column("dup",        sa.LargeBinary(), nullable=False),
        sa.Column("value",      sa.LargeBinary(), nullable=False),
        sa.Column("written_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("collection", "key", "dup", name="pk_kv_entries"),
    )


def downgrade() -> None:
    op.drop_table("kv_entries")
