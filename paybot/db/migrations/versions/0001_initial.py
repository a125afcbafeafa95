# ruff: noqa
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("handle", sa.String(length=64), nullable=False),
        sa.Column("external_id", sa.String(length=64), nullable=True),
        sa.Column("account_id", sa.String(length=32), nullable=True),
        sa.Column("network", sa.String(length=16), nullable=False, server_default="testnet"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_handle", "users", ["handle"], unique=True)

    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tx_id", sa.String(length=96), nullable=False),
        sa.Column("sender", sa.String(length=64), nullable=False),
        sa.Column("receiver", sa.String(length=64), nullable=True),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.String(length=40), nullable=True),
        sa.Column("unit", sa.String(length=32), nullable=True),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="completed"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_ledger_transactions_tx_id", "ledger_transactions", ["tx_id"], unique=False)
    op.create_index("ix_ledger_transactions_sender", "ledger_transactions", ["sender"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_ledger_transactions_sender", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_tx_id", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_index("ix_users_handle", table_name="users")
    op.drop_table("users")
