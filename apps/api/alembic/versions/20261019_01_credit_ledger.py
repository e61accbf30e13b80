"""Create credit ledger and booking snapshot tables.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "credit_ledger_entries",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), primary_key=True, autoincrement=True),
        sa.Column("customer_identity", sa.String(length=190), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(length=50), nullable=False),
        sa.Column("external_id", sa.String(length=190), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("delta <> 0", name="ck_credit_ledger_delta_nonzero"),
    )
    op.create_index(
        "ix_credit_ledger_entries_customer_identity",
        "credit_ledger_entries",
        ["customer_identity"],
    )
    op.create_index("ix_credit_ledger_entries_source", "credit_ledger_entries", ["source"])
    op.create_index("ix_credit_ledger_entries_external_id", "credit_ledger_entries", ["external_id"])
    op.create_index("ix_credit_ledger_entries_created_at", "credit_ledger_entries", ["created_at"])
    op.create_index(
        "uq_credit_ledger_stripe_external",
        "credit_ledger_entries",
        ["source", "external_id"],
        unique=True,
        postgresql_where=sa.text("source = 'stripe'"),
        sqlite_where=sa.text("source = 'stripe'"),
    )

    op.create_table(
        "booking_snapshots",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), primary_key=True, autoincrement=True),
        sa.Column("customer_identity", sa.String(length=190), nullable=False),
        sa.Column("external_booking_id", sa.String(length=190), nullable=False),
        sa.Column("status", sa.String(length=50), server_default="created", nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("external_booking_id", name="uq_booking_snapshots_external_booking_id"),
    )
    op.create_index("ix_booking_snapshots_customer_identity", "booking_snapshots", ["customer_identity"])
    op.create_index("ix_booking_snapshots_status", "booking_snapshots", ["status"])


def downgrade() -> None:
    op.drop_index("ix_booking_snapshots_status", table_name="booking_snapshots")
    op.drop_index("ix_booking_snapshots_customer_identity", table_name="booking_snapshots")
    op.drop_table("booking_snapshots")

    op.drop_index("uq_credit_ledger_stripe_external", table_name="credit_ledger_entries")
    op.drop_index("ix_credit_ledger_entries_created_at", table_name="credit_ledger_entries")
    op.drop_index("ix_credit_ledger_entries_external_id", table_name="credit_ledger_entries")
    op.drop_index("ix_credit_ledger_entries_source", table_name="credit_ledger_entries")
    op.drop_index("ix_credit_ledger_entries_customer_identity", table_name="credit_ledger_entries")
    op.drop_table("credit_ledger_entries")
