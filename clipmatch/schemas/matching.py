"""Pydantic schemas for matching operations."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from clipmatch.schemas.base import BaseResponse, PageResponse

ZERO = Decimal("0")


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class MatchSortColumn(str, Enum):
    ID = "id"
    CREATED_AT = "created_at"
    TIME_DIFFERENCE = "time_difference"
    GROSS_EXPENSE = "gross_expense"
    GROSS_INCOME = "gross_income"
    GROSS_PROFIT = "gross_profit"
    PROFIT_PERCENTAGE = "profit_percentage"


class ReportStats(BaseResponse):
    """Aggregate statistics derived from a report's current matches."""

    total_matches: int = 0
    total_expense: Decimal = ZERO
    total_income: Decimal = ZERO
    total_profit: Decimal = ZERO
    average_expense: Decimal = ZERO
    average_income: Decimal = ZERO
    average_profit: Decimal = ZERO
    success_rate: Decimal = ZERO
    total_profit_percentage: Decimal = ZERO
    max_profit: Decimal = ZERO
    min_profit: Decimal = ZERO


class AutoMatchResult(BaseModel):
    """Outcome of an automatic matching run."""

    report_id: int
    new_matches: int
    total_matches: int
    total_profit: Decimal
    average_profit: Decimal
    success_rate: Decimal
    unmatched_a: int = 0
    unmatched_b: int = 0
    stats: ReportStats


class ManualMatchRequest(BaseModel):
    """Request body for a human-directed pairing."""

    side_a_id: int = Field(ge=1)
    side_b_id: int = Field(ge=1)
    actor: str = Field(default="manual", min_length=1, max_length=100)


class ManualMatchResult(BaseModel):
    match_id: int
    time_difference: int
    stats: ReportStats


class DeleteMatchResult(BaseModel):
    ok: bool = True
    stats: ReportStats


class MatchResponse(BaseResponse):
    id: int
    report_id: int
    side_a_id: int
    side_b_id: int
    time_difference: int
    gross_expense: Decimal
    gross_income: Decimal
    gross_profit: Decimal
    profit_percentage: Decimal
    is_manual: bool
    created_by: str
    created_at: datetime


MatchPage = PageResponse[MatchResponse]


class UnmatchedTransactionResponse(BaseModel):
    id: int
    side: str
    source: str
    account_id: int
    occurred_at: datetime  # report clock
    amount: Decimal
    settlement_amount: Decimal


UnmatchedPage = PageResponse[UnmatchedTransactionResponse]


class ReportsSummary(BaseModel):
    """Totals across all reports, built from their stored statistics."""

    report_count: int
    total_matches: int
    total_expense: Decimal
    total_income: Decimal
    total_profit: Decimal
    average_profit: Decimal
    total_profit_percentage: Decimal
