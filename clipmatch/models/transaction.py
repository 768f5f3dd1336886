"""Source transaction models for both sides of a reconciliation.

Rows are written by the external ingestion process; the matching core only reads them.
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from clipmatch.database import Base


class Side(str, Enum):
    """Which external system a transaction was captured by."""

    A = "a"  # ledger-style (e.g. IDEX, Vires)
    B = "b"  # counterparty-style (e.g. Bybit)

    @property
    def other(self) -> "Side":
        return Side.B if self is Side.A else Side.A


class _SourceTransactionColumns:
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Flat amount; some sources only carry the amount inside payload.
    amount: Mapped[Decimal | None] = mapped_column(Numeric(20, 8), nullable=True)
    payload: Mapped[dict[str, Any] | str | None] = mapped_column(JSON, nullable=True)
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )


class LedgerTransaction(_SourceTransactionColumns, Base):
    """Side A transaction (ledger-style source)."""

    __tablename__ = "ledger_transactions"
    __table_args__ = (Index("ix_ledger_transactions_account_time", "account_id", "occurred_at"),)

    side = Side.A


class CounterpartyTransaction(_SourceTransactionColumns, Base):
    """Side B transaction (counterparty/exchange-style source)."""

    __tablename__ = "counterparty_transactions"
    __table_args__ = (Index("ix_counterparty_transactions_account_time", "account_id", "occurred_at"),)

    side = Side.B


SourceTransaction = LedgerTransaction | CounterpartyTransaction


def model_for_side(side: Side) -> type[LedgerTransaction] | type[CounterpartyTransaction]:
    """Return the ORM model that stores transactions for a side."""
    return LedgerTransaction if side is Side.A else CounterpartyTransaction
