from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "swap_attempts",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("run_id", sa.String(64), index=True),
        sa.Column("account", sa.String(64), index=True),
        sa.Column("chain_id", sa.Integer),
        sa.Column("status", sa.String(32), index=True),
        sa.Column("stage", sa.String(32)),
        sa.Column("tx_hash", sa.String(80), index=True),
        sa.Column("token_count", sa.Integer, default=0),
        sa.Column("addresses", sa.Text),
        sa.Column("amounts", sa.Text),
        sa.Column("min_receive", sa.String(80)),
        sa.Column("quote_total", sa.String(80)),
        sa.Column("error", sa.Text),
        sa.Column("error_type", sa.String(64)),
        sa.Column("started_at", sa.DateTime, nullable=False),
        sa.Column("finished_at", sa.DateTime),
    )


def downgrade():
    op.drop_table("swap_attempts")
