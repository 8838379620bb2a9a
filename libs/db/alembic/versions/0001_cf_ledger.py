# ruff: noqa: I001
"""Ledger tables: users, transactions, custom categories.

Revision ID: 0001_cf_ledger
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_cf_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "cf_users",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.Text(), nullable=False, unique=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("preferences", sa.JSON(), nullable=False),
        sa.Column("total_income", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("total_expense", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("net_balance", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("summary_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_cf_users_external_id", "cf_users", ["external_id"])

    op.create_table(
        "cf_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("cf_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("payment_method", sa.Text(), nullable=False, server_default="cash"),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("type in ('income','expense')", name="ck_cf_tx_type"),
        sa.CheckConstraint("amount >= 0", name="ck_cf_tx_amount_non_negative"),
        sa.CheckConstraint("payment_method in ('cash','upi')", name="ck_cf_tx_payment_method"),
    )
    op.create_index("ix_cf_tx_user_date", "cf_transactions", ["user_id", "date"])

    op.create_table(
        "cf_categories",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        sa.Column("color", sa.Text(), nullable=False, server_default="#888888"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("cf_categories")
    op.drop_index("ix_cf_tx_user_date", table_name="cf_transactions")
    op.drop_table("cf_transactions")
    op.drop_index("ix_cf_users_external_id", table_name="cf_users")
    op.drop_table("cf_users")
