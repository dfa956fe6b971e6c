"""Initial ledger schema.

Revision ID: 20261018_000001
Revises: 
Create Date: 2026-10-18 00:00:01.000000
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018_000001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("timezone('utc', now())"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("timezone('utc', now())"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "ledgers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("user_key", sa.String(length=64), nullable=False),
        sa.Column("spending_limit", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("spending_limit >= 0", name="ck_ledgers_limit_non_negative"),
    )
    op.create_index("ix_ledgers_user_key", "ledgers", ["user_key"], unique=True)

    op.create_table(
        "ledger_expenses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column(
            "ledger_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ledgers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("category", sa.String(length=255), nullable=False),
        sa.Column("occurred_on", sa.Date(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_ledger_expenses_amount_positive"),
    )
    op.create_index("ix_ledger_expenses_ledger_id", "ledger_expenses", ["ledger_id"])

    op.create_table(
        "ledger_incomes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column(
            "ledger_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ledgers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("occurred_on", sa.Date(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_ledger_incomes_amount_positive"),
    )
    op.create_index("ix_ledger_incomes_ledger_id", "ledger_incomes", ["ledger_id"])


def downgrade() -> None:
    op.drop_index("ix_ledger_incomes_ledger_id", table_name="ledger_incomes")
    op.drop_table("ledger_incomes")
    op.drop_index("ix_ledger_expenses_ledger_id", table_name="ledger_expenses")
    op.drop_table("ledger_expenses")
    op.drop_index("ix_ledgers_user_key", table_name="ledgers")
    op.drop_table("ledgers")
