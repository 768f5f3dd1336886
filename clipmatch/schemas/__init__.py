"""Pydantic schemas package."""

from clipmatch.schemas.base import BaseResponse, PageResponse
from clipmatch.schemas.matching import (
    AutoMatchResult,
    DeleteMatchResult,
    ManualMatchRequest,
    ManualMatchResult,
    MatchPage,
    MatchResponse,
    MatchSortColumn,
    ReportsSummary,
    ReportStats,
    SortDirection,
    UnmatchedPage,
    UnmatchedTransactionResponse,
)

__all__ = [
    "AutoMatchResult",
    "BaseResponse",
    "DeleteMatchResult",
    "ManualMatchRequest",
    "ManualMatchResult",
    "MatchPage",
    "MatchResponse",
    "MatchSortColumn",
    "PageResponse",
    "ReportStats",
    "ReportsSummary",
    "SortDirection",
    "UnmatchedPage",
    "UnmatchedTransactionResponse",
]
