"""create client and usage log tables

Revision ID: 5c1f0e7a9b21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1f0e7a9b21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the tenant and audit tables."""
    op.create_table(
        "clients",
        sa.Column("api_key", sa.String(length=128), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("plan", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("monthly_limit", sa.Integer(), nullable=False),
        sa.Column("used_this_month", sa.Integer(), nullable=False),
        sa.Column("last_reset_month", sa.String(length=7), nullable=False),
        sa.Column("total_verifications", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("api_key"),
    )
    op.create_table(
        "usage_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("api_key", sa.String(length=128), nullable=True),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("result", sa.String(length=64), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_usage_logs_timestamp", "usage_logs", ["timestamp"])
    op.create_index("ix_usage_logs_api_key", "usage_logs", ["api_key"])


def downgrade() -> None:
    """Drop the tenant and audit tables."""
    op.drop_index("ix_usage_logs_api_key", table_name="usage_logs")
    op.drop_index("ix_usage_logs_timestamp", table_name="usage_logs")
    op.drop_table("usage_logs")
    op.drop_table("clients")
