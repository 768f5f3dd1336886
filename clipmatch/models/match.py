"""Match model between a side-A and a side-B transaction."""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from clipmatch.database import Base

AUTO_ACTOR = "auto"


class ClipMatch(Base):
    """Confirmed pairing inside a report.

    The unique constraints enforce one live match per transaction per report.
    Deleting a row is terminal; re-pairing inserts a fresh row.
    """

    __tablename__ = "clip_matches"
    __table_args__ = (
        UniqueConstraint("report_id", "side_a_id", name="uq_clip_matches_report_side_a"),
        UniqueConstraint("report_id", "side_b_id", name="uq_clip_matches_report_side_b"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    report_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("match_reports.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    side_a_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("ledger_transactions.id", ondelete="CASCADE"),
        nullable=False,
    )
    side_b_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("counterparty_transactions.id", ondelete="CASCADE"),
        nullable=False,
    )
    time_difference: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # seconds
    gross_expense: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    gross_income: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    gross_profit: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    profit_percentage: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    is_manual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False, default=AUTO_ACTOR)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
