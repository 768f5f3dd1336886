"""Tests for report statistics."""

from decimal import Decimal
from types import SimpleNamespace

from clipmatch.services.aggregator import apply_stats, compute_report_stats, summarize_reports
from tests.factories import MatchReportFactory


def _figures(expense: str, income: str) -> SimpleNamespace:
    return SimpleNamespace(
        gross_expense=Decimal(expense),
        gross_income=Decimal(income),
        gross_profit=Decimal(income) - Decimal(expense),
    )


def test_empty_report_is_all_zero() -> None:
    stats = compute_report_stats([])

    assert stats.total_matches == 0
    assert stats.average_profit == Decimal("0")
    assert stats.success_rate == Decimal("0")
    assert stats.total_profit_percentage == Decimal("0")
    assert stats.max_profit == Decimal("0")
    assert stats.min_profit == Decimal("0")


def test_totals_averages_and_extremes() -> None:
    stats = compute_report_stats(
        [
            _figures("100", "110"),
            _figures("200", "190"),
            _figures("100", "105"),
            _figures("100", "100"),
        ]
    )

    assert stats.total_matches == 4
    assert stats.total_expense == Decimal("500")
    assert stats.total_income == Decimal("505")
    assert stats.total_profit == Decimal("5")
    assert stats.average_expense == Decimal("125")
    assert stats.average_profit == Decimal("1.25")
    # Two of four are strictly profitable; break-even does not count.
    assert stats.success_rate == Decimal("50")
    assert stats.total_profit_percentage == Decimal("1")
    assert stats.max_profit == Decimal("10")
    assert stats.min_profit == Decimal("-10")


def test_apply_stats_bumps_version() -> None:
    report = MatchReportFactory.build(version=3)
    stats = compute_report_stats([_figures("10", "12")])

    apply_stats(report, stats)

    assert report.version == 4
    assert report.total_matches == 1
    assert report.total_profit == Decimal("2")
    assert report.stats_updated_at is not None


def test_summarize_reports() -> None:
    reports = [
        MatchReportFactory.build(
            total_matches=2,
            total_expense=Decimal("200"),
            total_income=Decimal("210"),
            total_profit=Decimal("10"),
        ),
        MatchReportFactory.build(
            total_matches=3,
            total_expense=Decimal("300"),
            total_income=Decimal("295"),
            total_profit=Decimal("-5"),
        ),
    ]

    summary = summarize_reports(reports)

    assert summary.report_count == 2
    assert summary.total_matches == 5
    assert summary.total_profit == Decimal("5")
    assert summary.average_profit == Decimal("1")
    assert summary.total_profit_percentage == Decimal("1")


def test_summarize_no_reports() -> None:
    summary = summarize_reports([])
    assert summary.report_count == 0
    assert summary.average_profit == Decimal("0")
