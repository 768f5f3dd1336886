"""SQLAlchemy models package."""

from clipmatch.models.match import AUTO_ACTOR, ClipMatch
from clipmatch.models.report import MatchReport
from clipmatch.models.transaction import (
    CounterpartyTransaction,
    LedgerTransaction,
    Side,
    SourceTransaction,
    model_for_side,
)

__all__ = [
    "AUTO_ACTOR",
    "ClipMatch",
    "CounterpartyTransaction",
    "LedgerTransaction",
    "MatchReport",
    "Side",
    "SourceTransaction",
    "model_for_side",
]
