"""Match ledger storage: the persistence seam of the matching core."""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol, TypeVar

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from clipmatch.config import Settings, settings
from clipmatch.logger import get_logger
from clipmatch.models import ClipMatch, MatchReport, Side, SourceTransaction, model_for_side
from clipmatch.schemas import MatchSortColumn, ReportStats, SortDirection
from clipmatch.services.aggregator import apply_stats
from clipmatch.services.errors import ConflictError, NotFoundError

logger = get_logger(__name__)

T = TypeVar("T")

SORT_COLUMNS = {
    MatchSortColumn.ID: ClipMatch.id,
    MatchSortColumn.CREATED_AT: ClipMatch.created_at,
    MatchSortColumn.TIME_DIFFERENCE: ClipMatch.time_difference,
    MatchSortColumn.GROSS_EXPENSE: ClipMatch.gross_expense,
    MatchSortColumn.GROSS_INCOME: ClipMatch.gross_income,
    MatchSortColumn.GROSS_PROFIT: ClipMatch.gross_profit,
    MatchSortColumn.PROFIT_PERCENTAGE: ClipMatch.profit_percentage,
}


@dataclass(frozen=True)
class StorageWindow:
    """Account plus inclusive time bounds, expressed on the storage clock."""

    account_id: int
    start: datetime
    end: datetime


class MatchStore(Protocol):
    """Storage operations the matching core depends on."""

    async def get_report(self, report_id: int) -> MatchReport: ...

    async def list_reports(self) -> Sequence[MatchReport]: ...

    async def fetch_unmatched(
        self,
        side: Side,
        source: str,
        windows: Sequence[StorageWindow],
        exclude_ids: Iterable[int],
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> Sequence[SourceTransaction]: ...

    async def count_unmatched(
        self,
        side: Side,
        source: str,
        windows: Sequence[StorageWindow],
        exclude_ids: Iterable[int],
    ) -> int: ...

    async def matched_ids(self, report_id: int) -> tuple[set[int], set[int]]: ...

    async def is_matched(self, report_id: int, side: Side, transaction_id: int) -> bool: ...

    async def get_transaction(self, side: Side, transaction_id: int) -> SourceTransaction | None: ...

    async def bulk_insert_matches(self, rows: Sequence[dict[str, Any]]) -> int: ...

    async def insert_match(self, row: dict[str, Any]) -> ClipMatch: ...

    async def fetch_matches(
        self,
        report_id: int,
        *,
        page: int,
        page_size: int,
        sort_column: MatchSortColumn,
        sort_direction: SortDirection,
    ) -> tuple[Sequence[ClipMatch], int]: ...

    async def all_matches(self, report_id: int) -> Sequence[ClipMatch]: ...

    async def get_match(self, match_id: int) -> ClipMatch | None: ...

    async def delete_match(self, match_id: int, report_id: int) -> bool: ...

    async def update_report_stats(self, report_id: int, stats: ReportStats) -> MatchReport: ...

    async def acquire_run_token(self, report_id: int, token: str, ttl: timedelta) -> bool: ...

    async def release_run_token(self, report_id: int, token: str) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class SqlMatchStore:
    """MatchStore backed by an SQLAlchemy async session.

    Writes are left uncommitted until ``commit`` so callers control atomicity.
    Transient connection errors are retried with exponential backoff, but only
    while the session holds no uncommitted writes of ours.
    """

    def __init__(self, session: AsyncSession, config: Settings | None = None):
        self.session = session
        self.config = config or settings
        self._pending_writes = False

    # ------------------------------------------------------------------
    # Transaction control
    # ------------------------------------------------------------------

    async def commit(self) -> None:
        await self.session.commit()
        self._pending_writes = False

    async def rollback(self) -> None:
        await self.session.rollback()
        self._pending_writes = False

    async def _retrying(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        attempts = self.config.storage_retry_attempts
        attempt = 1
        while True:
            try:
                return await call()
            except OperationalError as exc:
                if self._pending_writes or attempt >= attempts:
                    raise
                delay = self.config.storage_retry_base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Transient storage error, retrying",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=attempts,
                    delay_seconds=delay,
                    error=str(exc),
                )
                await self.session.rollback()
                await asyncio.sleep(delay)
                attempt += 1

    def _insert(self):
        if self.session.get_bind().dialect.name == "sqlite":
            return sqlite_insert
        return pg_insert

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def get_report(self, report_id: int) -> MatchReport:
        async def _load() -> MatchReport | None:
            result = await self.session.execute(
                select(MatchReport)
                .where(MatchReport.id == report_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

        report = await self._retrying("get_report", _load)
        if report is None:
            raise NotFoundError("Report", report_id)
        return report

    async def list_reports(self) -> Sequence[MatchReport]:
        async def _load() -> Sequence[MatchReport]:
            result = await self.session.execute(select(MatchReport).order_by(MatchReport.id))
            return result.scalars().all()

        return await self._retrying("list_reports", _load)

    async def update_report_stats(self, report_id: int, stats: ReportStats) -> MatchReport:
        report = await self.get_report(report_id)
        apply_stats(report, stats)
        self._pending_writes = True
        await self.session.flush()
        return report

    async def acquire_run_token(self, report_id: int, token: str, ttl: timedelta) -> bool:
        """Claim the report's run token; an expired token may be taken over."""
        now = datetime.now(UTC)
        stmt = (
            update(MatchReport)
            .where(MatchReport.id == report_id)
            .where(or_(MatchReport.run_token.is_(None), MatchReport.run_started_at < now - ttl))
            .values(run_token=token, run_started_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1

    async def release_run_token(self, report_id: int, token: str) -> None:
        stmt = (
            update(MatchReport)
            .where(MatchReport.id == report_id, MatchReport.run_token == token)
            .values(run_token=None, run_started_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self.session.commit()

    # ------------------------------------------------------------------
    # Source transactions
    # ------------------------------------------------------------------

    def _unmatched_filter(
        self,
        side: Side,
        source: str,
        windows: Sequence[StorageWindow],
        exclude_ids: Iterable[int],
    ) -> list[Any]:
        model = model_for_side(side)
        in_windows = or_(
            *[
                and_(
                    model.account_id == w.account_id,
                    model.occurred_at >= w.start,
                    model.occurred_at <= w.end,
                )
                for w in windows
            ]
        )
        conditions = [model.source == source, in_windows]
        excluded = list(exclude_ids)
        if excluded:
            conditions.append(model.id.not_in(excluded))
        return conditions

    async def fetch_unmatched(
        self,
        side: Side,
        source: str,
        windows: Sequence[StorageWindow],
        exclude_ids: Iterable[int],
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> Sequence[SourceTransaction]:
        if not windows:
            return []
        model = model_for_side(side)
        stmt = (
            select(model)
            .where(*self._unmatched_filter(side, source, windows, exclude_ids))
            .order_by(model.occurred_at, model.id)
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        async def _load() -> Sequence[SourceTransaction]:
            result = await self.session.execute(stmt)
            return result.scalars().all()

        return await self._retrying("fetch_unmatched", _load)

    async def count_unmatched(
        self,
        side: Side,
        source: str,
        windows: Sequence[StorageWindow],
        exclude_ids: Iterable[int],
    ) -> int:
        if not windows:
            return 0
        model = model_for_side(side)
        stmt = select(func.count(model.id)).where(*self._unmatched_filter(side, source, windows, exclude_ids))

        async def _count() -> int:
            return (await self.session.execute(stmt)).scalar_one()

        return await self._retrying("count_unmatched", _count)

    async def get_transaction(self, side: Side, transaction_id: int) -> SourceTransaction | None:
        model = model_for_side(side)

        async def _load() -> SourceTransaction | None:
            return await self.session.get(model, transaction_id)

        return await self._retrying("get_transaction", _load)

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    async def matched_ids(self, report_id: int) -> tuple[set[int], set[int]]:
        async def _load() -> tuple[set[int], set[int]]:
            result = await self.session.execute(
                select(ClipMatch.side_a_id, ClipMatch.side_b_id).where(ClipMatch.report_id == report_id)
            )
            side_a: set[int] = set()
            side_b: set[int] = set()
            for a_id, b_id in result.all():
                side_a.add(a_id)
                side_b.add(b_id)
            return side_a, side_b

        return await self._retrying("matched_ids", _load)

    async def is_matched(self, report_id: int, side: Side, transaction_id: int) -> bool:
        column = ClipMatch.side_a_id if side is Side.A else ClipMatch.side_b_id
        stmt = select(ClipMatch.id).where(ClipMatch.report_id == report_id, column == transaction_id).limit(1)

        async def _check() -> bool:
            return (await self.session.execute(stmt)).scalar_one_or_none() is not None

        return await self._retrying("is_matched", _check)

    async def bulk_insert_matches(self, rows: Sequence[dict[str, Any]]) -> int:
        """Insert match rows, skipping any that collide with an existing match.

        Returns the number of rows actually inserted.
        """
        if not rows:
            return 0
        stmt = self._insert()(ClipMatch).values(list(rows)).on_conflict_do_nothing().returning(ClipMatch.id)

        async def _insert() -> int:
            result = await self.session.execute(stmt)
            return len(result.scalars().all())

        inserted = await self._retrying("bulk_insert_matches", _insert)
        self._pending_writes = True
        skipped = len(rows) - inserted
        if skipped:
            logger.info("Skipped conflicting matches", attempted=len(rows), inserted=inserted, skipped=skipped)
        return inserted

    async def insert_match(self, row: dict[str, Any]) -> ClipMatch:
        match = ClipMatch(**row)
        self.session.add(match)
        self._pending_writes = True
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.rollback()
            raise ConflictError(
                f"Transactions {row['side_a_id']}/{row['side_b_id']} are already matched in report {row['report_id']}"
            ) from exc
        return match

    async def fetch_matches(
        self,
        report_id: int,
        *,
        page: int,
        page_size: int,
        sort_column: MatchSortColumn = MatchSortColumn.CREATED_AT,
        sort_direction: SortDirection = SortDirection.DESC,
    ) -> tuple[Sequence[ClipMatch], int]:
        column = SORT_COLUMNS[sort_column]
        if sort_direction is SortDirection.ASC:
            ordering = [column.asc(), ClipMatch.id.asc()]
        else:
            ordering = [column.desc(), ClipMatch.id.desc()]

        async def _load() -> tuple[Sequence[ClipMatch], int]:
            total = (
                await self.session.execute(
                    select(func.count(ClipMatch.id)).where(ClipMatch.report_id == report_id)
                )
            ).scalar_one()
            result = await self.session.execute(
                select(ClipMatch)
                .where(ClipMatch.report_id == report_id)
                .order_by(*ordering)
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            return result.scalars().all(), total

        return await self._retrying("fetch_matches", _load)

    async def all_matches(self, report_id: int) -> Sequence[ClipMatch]:
        async def _load() -> Sequence[ClipMatch]:
            result = await self.session.execute(
                select(ClipMatch).where(ClipMatch.report_id == report_id).order_by(ClipMatch.id)
            )
            return result.scalars().all()

        return await self._retrying("all_matches", _load)

    async def get_match(self, match_id: int) -> ClipMatch | None:
        async def _load() -> ClipMatch | None:
            return await self.session.get(ClipMatch, match_id)

        return await self._retrying("get_match", _load)

    async def delete_match(self, match_id: int, report_id: int) -> bool:
        result = await self.session.execute(
            delete(ClipMatch)
            .where(ClipMatch.id == match_id, ClipMatch.report_id == report_id)
            .execution_options(synchronize_session=False)
        )
        self._pending_writes = True
        return result.rowcount == 1
