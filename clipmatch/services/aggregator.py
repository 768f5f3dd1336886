"""Report statistics derived from a report's current matches."""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

from clipmatch.logger import get_logger
from clipmatch.models import MatchReport
from clipmatch.schemas import ReportsSummary, ReportStats
from clipmatch.services.metrics import ZERO, quantize_money, safe_average, safe_percentage

if TYPE_CHECKING:
    from clipmatch.services.store import MatchStore

logger = get_logger(__name__)


class MatchFigures(Protocol):
    gross_expense: Decimal
    gross_income: Decimal
    gross_profit: Decimal


def compute_report_stats(matches: Iterable[MatchFigures]) -> ReportStats:
    """Aggregate match figures into report statistics.

    Averages divide by the match count and resolve to zero when there are no
    matches; the success rate is the share of matches with a positive profit.
    """
    count = 0
    profitable = 0
    total_expense = ZERO
    total_income = ZERO
    total_profit = ZERO
    max_profit: Decimal | None = None
    min_profit: Decimal | None = None

    for m in matches:
        count += 1
        total_expense += m.gross_expense
        total_income += m.gross_income
        total_profit += m.gross_profit
        if m.gross_profit > 0:
            profitable += 1
        max_profit = m.gross_profit if max_profit is None else max(max_profit, m.gross_profit)
        min_profit = m.gross_profit if min_profit is None else min(min_profit, m.gross_profit)

    return ReportStats(
        total_matches=count,
        total_expense=quantize_money(total_expense),
        total_income=quantize_money(total_income),
        total_profit=quantize_money(total_profit),
        average_expense=safe_average(total_expense, count),
        average_income=safe_average(total_income, count),
        average_profit=safe_average(total_profit, count),
        success_rate=safe_percentage(Decimal(profitable), Decimal(count)),
        total_profit_percentage=safe_percentage(total_profit, total_expense),
        max_profit=quantize_money(max_profit) if max_profit is not None else ZERO,
        min_profit=quantize_money(min_profit) if min_profit is not None else ZERO,
    )


def apply_stats(report: MatchReport, stats: ReportStats) -> None:
    """Copy statistics onto the report row, bumping its version."""
    for field_name in ReportStats.model_fields:
        setattr(report, field_name, getattr(stats, field_name))
    report.stats_updated_at = datetime.now(UTC)
    report.version = (report.version or 0) + 1


def stats_from_report(report: MatchReport) -> ReportStats:
    return ReportStats.model_validate(report)


def summarize_reports(reports: Sequence[MatchReport]) -> ReportsSummary:
    """Roll up stored statistics across reports."""
    total_matches = sum(r.total_matches for r in reports)
    total_expense = sum((r.total_expense for r in reports), ZERO)
    total_income = sum((r.total_income for r in reports), ZERO)
    total_profit = sum((r.total_profit for r in reports), ZERO)

    logger.debug("Summarized reports", report_count=len(reports), total_matches=total_matches)
    return ReportsSummary(
        report_count=len(reports),
        total_matches=total_matches,
        total_expense=quantize_money(total_expense),
        total_income=quantize_money(total_income),
        total_profit=quantize_money(total_profit),
        average_profit=safe_average(total_profit, total_matches),
        total_profit_percentage=safe_percentage(total_profit, total_expense),
    )


async def recompute(store: "MatchStore", report_id: int) -> ReportStats:
    """Rebuild a report's statistics from its matches and write them back (uncommitted)."""
    stats = compute_report_stats(await store.all_matches(report_id))
    await store.update_report_stats(report_id, stats)
    logger.info(
        "Report statistics recomputed",
        report_id=report_id,
        total_matches=stats.total_matches,
        total_profit=str(stats.total_profit),
    )
    return stats


async def load_reports_summary(store: "MatchStore") -> ReportsSummary:
    return summarize_reports(await store.list_reports())
