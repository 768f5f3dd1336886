"""Reconciliation report model."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from clipmatch.database import Base
from clipmatch.models.base import TimestampMixin

ZERO = Decimal("0")


class MatchReport(TimestampMixin, Base):
    """Bounded reconciliation job.

    Range, scope and profile are owned by the report editor; the statistics and
    run-token columns are owned by the matching core.
    """

    __tablename__ = "match_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    profile: Mapped[str] = mapped_column(String(50), nullable=False, default="idex_bybit")
    time_range_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    time_range_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # [{"account_id": 1, "side": "a", "start": "...", "end": "..."}]
    account_scope: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    # Aggregate statistics (recomputed after every ledger mutation)
    total_matches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_expense: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False, default=ZERO)
    total_income: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False, default=ZERO)
    total_profit: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False, default=ZERO)
    average_expense: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False, default=ZERO)
    average_income: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False, default=ZERO)
    average_profit: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False, default=ZERO)
    success_rate: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False, default=ZERO)
    total_profit_percentage: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False, default=ZERO)
    max_profit: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False, default=ZERO)
    min_profit: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False, default=ZERO)
    stats_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Exclusive run token shared by auto, manual and unmatch operations
    run_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    run_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
