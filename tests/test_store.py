"""Tests for the SQL match store."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from clipmatch.models import Side
from clipmatch.schemas import MatchSortColumn, SortDirection
from clipmatch.services.errors import ConflictError, NotFoundError
from clipmatch.services.store import SqlMatchStore, StorageWindow
from tests.factories import (
    BASE_TIME,
    SIDE_A_ACCOUNT,
    ClipMatchFactory,
    CounterpartyTransactionFactory,
    LedgerTransactionFactory,
    MatchReportFactory,
)


def _row(report_id: int, a_id: int, b_id: int, profit: str = "1.00") -> dict:
    return {
        "report_id": report_id,
        "side_a_id": a_id,
        "side_b_id": b_id,
        "time_difference": 60,
        "gross_expense": Decimal("100.00"),
        "gross_income": Decimal("100.00") + Decimal(profit),
        "gross_profit": Decimal(profit),
        "profit_percentage": Decimal(profit),
        "is_manual": False,
        "created_by": "auto",
        "created_at": datetime.now(UTC),
    }


async def test_get_report_missing(store) -> None:
    with pytest.raises(NotFoundError, match="Report 404 not found"):
        await store.get_report(404)


async def test_bulk_insert_skips_conflicts(db, store) -> None:
    report = await MatchReportFactory.create_async(db)
    a1 = await LedgerTransactionFactory.create_async(db)
    a2 = await LedgerTransactionFactory.create_async(db)
    b1 = await CounterpartyTransactionFactory.create_async(db)
    b2 = await CounterpartyTransactionFactory.create_async(db)
    report_id, a1_id, a2_id, b1_id, b2_id = report.id, a1.id, a2.id, b1.id, b2.id
    await store.commit()

    assert await store.bulk_insert_matches([_row(report_id, a1_id, b1_id)]) == 1
    await store.commit()

    # a1 is taken; the second row is new
    inserted = await store.bulk_insert_matches([_row(report_id, a1_id, b2_id), _row(report_id, a2_id, b2_id)])
    await store.commit()

    assert inserted == 1
    assert await store.matched_ids(report_id) == ({a1_id, a2_id}, {b1_id, b2_id})


async def test_same_transaction_may_match_in_another_report(db, store) -> None:
    first = await MatchReportFactory.create_async(db)
    second = await MatchReportFactory.create_async(db)
    a = await LedgerTransactionFactory.create_async(db)
    b = await CounterpartyTransactionFactory.create_async(db)
    await store.commit()

    assert await store.bulk_insert_matches([_row(first.id, a.id, b.id), _row(second.id, a.id, b.id)]) == 2


async def test_insert_match_conflict(db, store) -> None:
    report = await MatchReportFactory.create_async(db)
    a = await LedgerTransactionFactory.create_async(db)
    b = await CounterpartyTransactionFactory.create_async(db)
    await ClipMatchFactory.create_async(db, report.id, a.id, b.id)
    row = _row(report.id, a.id, b.id)
    await store.commit()

    with pytest.raises(ConflictError):
        await store.insert_match(row)


async def test_fetch_unmatched_filters_scope_time_and_exclusions(db, store) -> None:
    inside = await LedgerTransactionFactory.create_async(db, occurred_at=BASE_TIME)
    excluded = await LedgerTransactionFactory.create_async(db, occurred_at=BASE_TIME)
    await LedgerTransactionFactory.create_async(db, occurred_at=BASE_TIME + timedelta(hours=5))
    await LedgerTransactionFactory.create_async(db, occurred_at=BASE_TIME, account_id=99)
    await LedgerTransactionFactory.create_async(db, occurred_at=BASE_TIME, source="idex")
    inside_id, excluded_id = inside.id, excluded.id
    await store.commit()

    windows = [StorageWindow(SIDE_A_ACCOUNT, BASE_TIME - timedelta(hours=1), BASE_TIME + timedelta(hours=1))]
    rows = await store.fetch_unmatched(Side.A, "ledger", windows, {excluded_id})

    assert [r.id for r in rows] == [inside_id]
    assert await store.count_unmatched(Side.A, "ledger", windows, {excluded_id}) == 1
    assert await store.fetch_unmatched(Side.A, "ledger", [], set()) == []


async def test_fetch_matches_sorting_and_pagination(db, store) -> None:
    report = await MatchReportFactory.create_async(db)
    report_id = report.id
    profits = ["3.00", "-1.00", "7.00"]
    for profit in profits:
        a = await LedgerTransactionFactory.create_async(db)
        b = await CounterpartyTransactionFactory.create_async(db)
        await ClipMatchFactory.create_async(db, report_id, a.id, b.id, gross_profit=Decimal(profit))
    await store.commit()

    items, total = await store.fetch_matches(
        report_id,
        page=1,
        page_size=2,
        sort_column=MatchSortColumn.GROSS_PROFIT,
        sort_direction=SortDirection.DESC,
    )
    assert total == 3
    assert [m.gross_profit for m in items] == [Decimal("7.00"), Decimal("3.00")]

    items, _ = await store.fetch_matches(
        report_id,
        page=2,
        page_size=2,
        sort_column=MatchSortColumn.GROSS_PROFIT,
        sort_direction=SortDirection.DESC,
    )
    assert [m.gross_profit for m in items] == [Decimal("-1.00")]


async def test_delete_match_scoped_to_report(db, store) -> None:
    report = await MatchReportFactory.create_async(db)
    other = await MatchReportFactory.create_async(db)
    a = await LedgerTransactionFactory.create_async(db)
    b = await CounterpartyTransactionFactory.create_async(db)
    m = await ClipMatchFactory.create_async(db, report.id, a.id, b.id)
    match_id, report_id, other_id = m.id, report.id, other.id
    await store.commit()

    assert await store.delete_match(match_id, other_id) is False
    assert await store.delete_match(match_id, report_id) is True
    await store.commit()
    assert await store.all_matches(report_id) == []


async def test_run_token_is_exclusive_until_released(db, store) -> None:
    report = await MatchReportFactory.create_async(db)
    report_id = report.id
    await store.commit()
    ttl = timedelta(minutes=15)

    assert await store.acquire_run_token(report_id, "first", ttl) is True
    assert await store.acquire_run_token(report_id, "second", ttl) is False

    await store.release_run_token(report_id, "first")
    assert await store.acquire_run_token(report_id, "second", ttl) is True


async def test_stale_run_token_can_be_taken_over(db, store) -> None:
    report = await MatchReportFactory.create_async(
        db,
        run_token="abandoned",
        run_started_at=datetime.now(UTC) - timedelta(hours=2),
    )
    report_id = report.id
    await store.commit()

    assert await store.acquire_run_token(report_id, "fresh", timedelta(minutes=15)) is True


async def test_reads_retry_transient_errors(db, test_settings, monkeypatch) -> None:
    store = SqlMatchStore(db, test_settings)
    calls = {"count": 0}
    original = db.execute

    async def flaky_execute(*args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 1:
            raise OperationalError("SELECT 1", {}, Exception("connection reset"))
        return await original(*args, **kwargs)

    monkeypatch.setattr(db, "execute", flaky_execute)

    assert await store.list_reports() == []
    assert calls["count"] == 2


async def test_reads_give_up_after_max_attempts(db, test_settings, monkeypatch) -> None:
    store = SqlMatchStore(db, test_settings)

    async def broken_execute(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(db, "execute", broken_execute)

    with pytest.raises(OperationalError):
        await store.list_reports()
