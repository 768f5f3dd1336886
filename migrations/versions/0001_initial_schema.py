"""Initial schema for clip matching."""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(20, 8)


def _source_transaction_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("source", sa.String(length=50), nullable=False),
        sa.Column("external_id", sa.String(length=100), nullable=True),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("amount", MONEY, nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("ingested_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table("ledger_transactions", *_source_transaction_columns())
    op.create_index(
        "ix_ledger_transactions_account_time",
        "ledger_transactions",
        ["account_id", "occurred_at"],
    )

    op.create_table("counterparty_transactions", *_source_transaction_columns())
    op.create_index(
        "ix_counterparty_transactions_account_time",
        "counterparty_transactions",
        ["account_id", "occurred_at"],
    )

    op.create_table(
        "match_reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("profile", sa.String(length=50), nullable=False),
        sa.Column("time_range_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("time_range_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("account_scope", sa.JSON(), nullable=False),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        sa.Column("total_matches", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_expense", MONEY, nullable=False, server_default="0"),
        sa.Column("total_income", MONEY, nullable=False, server_default="0"),
        sa.Column("total_profit", MONEY, nullable=False, server_default="0"),
        sa.Column("average_expense", MONEY, nullable=False, server_default="0"),
        sa.Column("average_income", MONEY, nullable=False, server_default="0"),
        sa.Column("average_profit", MONEY, nullable=False, server_default="0"),
        sa.Column("success_rate", MONEY, nullable=False, server_default="0"),
        sa.Column("total_profit_percentage", MONEY, nullable=False, server_default="0"),
        sa.Column("max_profit", MONEY, nullable=False, server_default="0"),
        sa.Column("min_profit", MONEY, nullable=False, server_default="0"),
        sa.Column("stats_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("run_token", sa.String(length=64), nullable=True),
        sa.Column("run_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "clip_matches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "report_id",
            sa.Integer(),
            sa.ForeignKey("match_reports.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "side_a_id",
            sa.Integer(),
            sa.ForeignKey("ledger_transactions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "side_b_id",
            sa.Integer(),
            sa.ForeignKey("counterparty_transactions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("time_difference", sa.Integer(), nullable=False),
        sa.Column("gross_expense", MONEY, nullable=False),
        sa.Column("gross_income", MONEY, nullable=False),
        sa.Column("gross_profit", MONEY, nullable=False),
        sa.Column("profit_percentage", MONEY, nullable=False),
        sa.Column("is_manual", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("report_id", "side_a_id", name="uq_clip_matches_report_side_a"),
        sa.UniqueConstraint("report_id", "side_b_id", name="uq_clip_matches_report_side_b"),
    )
    op.create_index("ix_clip_matches_report_id", "clip_matches", ["report_id"])


def downgrade() -> None:
    op.drop_index("ix_clip_matches_report_id", table_name="clip_matches")
    op.drop_table("clip_matches")
    op.drop_table("match_reports")
    op.drop_index("ix_counterparty_transactions_account_time", table_name="counterparty_transactions")
    op.drop_table("counterparty_transactions")
    op.drop_index("ix_ledger_transactions_account_time", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
