"""Matching engine: orchestrates candidates, matcher, ledger and statistics for a report."""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from clipmatch.config import Settings, settings
from clipmatch.logger import async_log_timing, get_logger, log_exception
from clipmatch.models import AUTO_ACTOR, MatchReport, Side, SourceTransaction
from clipmatch.schemas import (
    AutoMatchResult,
    DeleteMatchResult,
    ManualMatchResult,
    MatchPage,
    MatchResponse,
    MatchSortColumn,
    ReportStats,
    SortDirection,
    UnmatchedPage,
    UnmatchedTransactionResponse,
)
from clipmatch.services.adapters import build_adapter
from clipmatch.services.aggregator import recompute, stats_from_report
from clipmatch.services.candidates import CandidateFinder
from clipmatch.services.errors import (
    AutoMatchInterruptedError,
    ConflictError,
    MatchingError,
    NotFoundError,
    ValidationError,
)
from clipmatch.services.locking import report_run_lock
from clipmatch.services.matcher import ProposedMatch, iter_matches, pair_metrics, time_gap
from clipmatch.services.profiles import MatchingProfile, get_profile
from clipmatch.services.store import MatchStore

logger = get_logger(__name__)


def _match_row(
    report_id: int,
    proposed: ProposedMatch,
    *,
    actor: str = AUTO_ACTOR,
    is_manual: bool = False,
) -> dict[str, Any]:
    metrics = proposed.metrics
    return {
        "report_id": report_id,
        "side_a_id": proposed.side_a.id,
        "side_b_id": proposed.side_b.id,
        "time_difference": proposed.time_difference_seconds,
        "gross_expense": metrics.gross_expense,
        "gross_income": metrics.gross_income,
        "gross_profit": metrics.gross_profit,
        "profit_percentage": metrics.profit_percentage,
        "is_manual": is_manual,
        "created_by": actor,
        "created_at": datetime.now(UTC),
    }


class MatchingEngine:
    """Runs every matching operation of a report under its run token."""

    def __init__(self, store: MatchStore, profile: MatchingProfile, config: Settings | None = None):
        self.store = store
        self.profile = profile
        self.config = config or settings
        self.thresholds = profile.thresholds(self.config)
        self.adapters = profile.adapters(self.config)
        self.finder = CandidateFinder(store, self.adapters)
        # Matches committed by the current or most recent auto-match run
        self.committed = 0

    @classmethod
    async def for_report(
        cls, store: MatchStore, report_id: int, config: Settings | None = None
    ) -> "MatchingEngine":
        """Build the engine for the profile a report is configured with."""
        report = await store.get_report(report_id)
        return cls(store, get_profile(report.profile), config)

    def _lock(self, report_id: int):
        return report_run_lock(self.store, report_id, timedelta(seconds=self.config.report_lock_ttl_seconds))

    def _check_profile(self, report: MatchReport) -> None:
        if report.profile != self.profile.name:
            raise ValidationError(
                f"Report {report.id} uses profile '{report.profile}', engine is '{self.profile.name}'"
            )

    def _check_page(self, page: int, page_size: int | None) -> int:
        size = page_size or self.config.default_page_size
        if page < 1:
            raise ValidationError(f"page must be >= 1, got {page}")
        if not 1 <= size <= self.config.max_page_size:
            raise ValidationError(f"page_size must be between 1 and {self.config.max_page_size}, got {size}")
        return size

    async def _commit_chunk(self, report_id: int, chunk: list[dict[str, Any]]) -> ReportStats:
        inserted = await self.store.bulk_insert_matches(chunk)
        # Stats commit together with the rows they count
        stats = await recompute(self.store, report_id)
        await self.store.commit()
        self.committed += inserted
        logger.debug("Committed match chunk", report_id=report_id, inserted=inserted, committed=self.committed)
        return stats

    async def _settle_after_failure(self, report_id: int) -> None:
        """Bring statistics in line with whatever was committed before a failure."""
        await self.store.rollback()
        await recompute(self.store, report_id)
        await self.store.commit()

    # ------------------------------------------------------------------
    # Auto match
    # ------------------------------------------------------------------

    async def run_auto_match(self, report_id: int) -> AutoMatchResult:
        """Pair every eligible unmatched transaction of the report.

        Matches are committed in chunks, each together with the statistics
        recomputed over everything committed so far. When the run fails part
        way, committed chunks stay, statistics are recomputed over them, and
        AutoMatchInterruptedError carries the committed count. Running again
        only considers transactions that are still unmatched.
        """
        self.committed = 0
        async with self._lock(report_id):
            report = await self.store.get_report(report_id)
            self._check_profile(report)
            candidates = await self.finder.find(report)

            batch_size = self.config.match_commit_batch_size
            proposed_count = 0
            async with async_log_timing(
                "auto_match", logger=logger, report_id=report_id, profile=self.profile.name
            ) as timing:
                chunk: list[dict[str, Any]] = []
                stats: ReportStats | None = None
                try:
                    for proposed in iter_matches(
                        candidates.side_a, candidates.side_b, self.thresholds, self.profile.roles
                    ):
                        proposed_count += 1
                        chunk.append(_match_row(report_id, proposed))
                        if len(chunk) >= batch_size:
                            stats = await self._commit_chunk(report_id, chunk)
                            chunk = []
                    if chunk:
                        stats = await self._commit_chunk(report_id, chunk)
                except asyncio.CancelledError:
                    logger.warning("Auto-match cancelled", report_id=report_id, committed=self.committed)
                    await self._settle_after_failure(report_id)
                    raise
                except (MatchingError, SQLAlchemyError) as exc:
                    log_exception(logger, exc, "Auto-match interrupted", report_id=report_id, committed=self.committed)
                    await self._settle_after_failure(report_id)
                    raise AutoMatchInterruptedError(report_id, self.committed, cause=exc) from exc

                if stats is None:
                    stats = await recompute(self.store, report_id)
                    await self.store.commit()
                timing["new_matches"] = self.committed

        return AutoMatchResult(
            report_id=report_id,
            new_matches=self.committed,
            total_matches=stats.total_matches,
            total_profit=stats.total_profit,
            average_profit=stats.average_profit,
            success_rate=stats.success_rate,
            unmatched_a=len(candidates.side_a) - proposed_count,
            unmatched_b=len(candidates.side_b) - proposed_count,
            stats=stats,
        )

    # ------------------------------------------------------------------
    # Manual match / unmatch
    # ------------------------------------------------------------------

    async def _require_transaction(self, side: Side, transaction_id: int) -> SourceTransaction:
        row = await self.store.get_transaction(side, transaction_id)
        if row is None:
            raise NotFoundError(f"Side {side.value.upper()} transaction", transaction_id)
        return row

    async def _require_unmatched(self, report_id: int, side: Side, transaction_id: int) -> None:
        if await self.store.is_matched(report_id, side, transaction_id):
            raise ConflictError(
                f"Side {side.value.upper()} transaction {transaction_id} is already matched in report {report_id}",
                side=side.value,
                transaction_id=transaction_id,
            )

    async def create_manual_match(
        self, report_id: int, side_a_id: int, side_b_id: int, actor: str = "manual"
    ) -> ManualMatchResult:
        """Pair two transactions chosen by a person.

        Tolerance, window and key constraints do not apply; the time gap is
        still measured on the report clock and stored.
        """
        async with self._lock(report_id):
            report = await self.store.get_report(report_id)
            self._check_profile(report)
            row_a = await self._require_transaction(Side.A, side_a_id)
            row_b = await self._require_transaction(Side.B, side_b_id)
            await self._require_unmatched(report_id, Side.A, side_a_id)
            await self._require_unmatched(report_id, Side.B, side_b_id)

            side_a = build_adapter(row_a.source, self.config).normalize(row_a)
            side_b = build_adapter(row_b.source, self.config).normalize(row_b)

            proposed = ProposedMatch(
                side_a=side_a,
                side_b=side_b,
                time_difference=time_gap(side_a, side_b),
                metrics=pair_metrics(side_a, side_b, self.profile.roles),
            )
            match = await self.store.insert_match(_match_row(report_id, proposed, actor=actor, is_manual=True))
            stats = await recompute(self.store, report_id)
            await self.store.commit()

        logger.info(
            "Manual match created",
            report_id=report_id,
            match_id=match.id,
            side_a_id=side_a_id,
            side_b_id=side_b_id,
            actor=actor,
        )
        return ManualMatchResult(
            match_id=match.id,
            time_difference=proposed.time_difference_seconds,
            stats=stats,
        )

    async def delete_match(self, match_id: int, report_id: int) -> DeleteMatchResult:
        """Remove a match of this report and recompute its statistics."""
        async with self._lock(report_id):
            match = await self.store.get_match(match_id)
            if match is None or match.report_id != report_id:
                raise NotFoundError("Match", match_id)
            if not await self.store.delete_match(match_id, report_id):
                raise NotFoundError("Match", match_id)
            stats = await recompute(self.store, report_id)
            await self.store.commit()

        logger.info("Match deleted", report_id=report_id, match_id=match_id)
        return DeleteMatchResult(ok=True, stats=stats)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_stats(self, report_id: int) -> ReportStats:
        return stats_from_report(await self.store.get_report(report_id))

    async def list_matches(
        self,
        report_id: int,
        *,
        page: int = 1,
        page_size: int | None = None,
        sort_column: MatchSortColumn = MatchSortColumn.CREATED_AT,
        sort_direction: SortDirection = SortDirection.DESC,
    ) -> MatchPage:
        size = self._check_page(page, page_size)
        await self.store.get_report(report_id)
        items, total = await self.store.fetch_matches(
            report_id,
            page=page,
            page_size=size,
            sort_column=sort_column,
            sort_direction=sort_direction,
        )
        return MatchPage(
            items=[MatchResponse.model_validate(m) for m in items],
            total=total,
            page=page,
            page_size=size,
        )

    async def list_unmatched(
        self,
        report_id: int,
        side: Side,
        *,
        page: int = 1,
        page_size: int | None = None,
    ) -> UnmatchedPage:
        size = self._check_page(page, page_size)
        report = await self.store.get_report(report_id)
        self._check_profile(report)
        transactions, total = await self.finder.list_unmatched(report, side, page=page, page_size=size)
        return UnmatchedPage(
            items=[
                UnmatchedTransactionResponse(
                    id=txn.id,
                    side=txn.side.value,
                    source=txn.source,
                    account_id=txn.account_id,
                    occurred_at=txn.occurred_at,
                    amount=txn.amount,
                    settlement_amount=txn.settlement_amount,
                )
                for txn in transactions
            ],
            total=total,
            page=page,
            page_size=size,
        )
