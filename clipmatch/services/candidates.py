"""Candidate finder: unmatched, in-scope transactions of a report."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from clipmatch.logger import get_logger
from clipmatch.models import MatchReport, Side
from clipmatch.services.adapters import NormalizedTransaction, SourceAdapter, ensure_utc
from clipmatch.services.errors import ConfigurationError, ValidationError
from clipmatch.services.store import MatchStore, StorageWindow

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScopeEntry:
    """One account of a report's scope with its optional narrower window."""

    account_id: int
    side: Side
    start: datetime | None = None
    end: datetime | None = None


@dataclass(frozen=True)
class ScopeWindow:
    """Effective window of an account on the report clock."""

    account_id: int
    start: datetime
    end: datetime


@dataclass
class Candidates:
    side_a: list[NormalizedTransaction] = field(default_factory=list)
    side_b: list[NormalizedTransaction] = field(default_factory=list)


def _parse_bound(value: Any, *, index: int, name: str) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        return ensure_utc(datetime.fromisoformat(str(value)))
    except ValueError as exc:
        raise ConfigurationError(f"account_scope[{index}].{name} is not a timestamp: {value!r}") from exc


def parse_scope(raw_scope: Any) -> dict[Side, list[ScopeEntry]]:
    """Split a report's account scope by side.

    Every side must have at least one entry.
    """
    if not isinstance(raw_scope, list):
        raise ConfigurationError("account_scope must be a list of entries")

    by_side: dict[Side, list[ScopeEntry]] = {Side.A: [], Side.B: []}
    for index, item in enumerate(raw_scope):
        if not isinstance(item, dict):
            raise ConfigurationError(f"account_scope[{index}] must be an object")
        try:
            side = Side(item.get("side"))
            account_id = int(item["account_id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"account_scope[{index}] needs a valid account_id and side") from exc
        by_side[side].append(
            ScopeEntry(
                account_id=account_id,
                side=side,
                start=_parse_bound(item.get("start"), index=index, name="start"),
                end=_parse_bound(item.get("end"), index=index, name="end"),
            )
        )

    for side, entries in by_side.items():
        if not entries:
            raise ConfigurationError(f"account_scope has no side {side.value} accounts")
    return by_side


def report_time_range(report: MatchReport) -> tuple[datetime, datetime]:
    start = ensure_utc(report.time_range_start)
    end = ensure_utc(report.time_range_end)
    if start > end:
        raise ValidationError(f"Report {report.id} time range starts after it ends")
    return start, end


def effective_windows(entries: list[ScopeEntry], start: datetime, end: datetime) -> list[ScopeWindow]:
    """Intersect each entry's own window with the report range; empty windows drop out."""
    windows = []
    for entry in entries:
        w_start = max(start, entry.start) if entry.start else start
        w_end = min(end, entry.end) if entry.end else end
        if w_start <= w_end:
            windows.append(ScopeWindow(entry.account_id, w_start, w_end))
    return windows


def to_storage_windows(adapter: SourceAdapter, windows: list[ScopeWindow]) -> list[StorageWindow]:
    return [
        StorageWindow(w.account_id, adapter.to_storage_clock(w.start), adapter.to_storage_clock(w.end))
        for w in windows
    ]


class CandidateFinder:
    """Loads and normalizes the unmatched transactions a report may pair."""

    def __init__(self, store: MatchStore, adapters: dict[Side, SourceAdapter]):
        self.store = store
        self.adapters = adapters

    def _storage_windows(self, report: MatchReport) -> dict[Side, list[StorageWindow]]:
        scope = parse_scope(report.account_scope)
        start, end = report_time_range(report)
        return {
            side: to_storage_windows(self.adapters[side], effective_windows(scope[side], start, end))
            for side in (Side.A, Side.B)
        }

    async def find(self, report: MatchReport) -> Candidates:
        """Return both sides' candidates, ordered by (occurred_at, id).

        Rows whose match amount is not positive cannot be paired automatically
        and are left out.
        """
        windows = self._storage_windows(report)
        matched = await self.store.matched_ids(report.id)
        candidates = Candidates()

        for side, matched_ids, bucket in (
            (Side.A, matched[0], candidates.side_a),
            (Side.B, matched[1], candidates.side_b),
        ):
            adapter = self.adapters[side]
            rows = await self.store.fetch_unmatched(side, adapter.name, windows[side], matched_ids)
            ineligible = []
            for row in rows:
                txn = adapter.normalize(row)
                if txn.amount <= 0:
                    ineligible.append(txn.id)
                    continue
                bucket.append(txn)
            if ineligible:
                logger.warning(
                    "Skipping transactions with non-positive amounts",
                    report_id=report.id,
                    source=adapter.name,
                    transaction_ids=ineligible,
                )

        logger.info(
            "Candidates loaded",
            report_id=report.id,
            side_a=len(candidates.side_a),
            side_b=len(candidates.side_b),
        )
        return candidates

    async def list_unmatched(
        self, report: MatchReport, side: Side, *, page: int, page_size: int
    ) -> tuple[list[NormalizedTransaction], int]:
        """Page through a side's unmatched transactions with the total count."""
        windows = self._storage_windows(report)[side]
        matched = await self.store.matched_ids(report.id)
        exclude = matched[0] if side is Side.A else matched[1]
        adapter = self.adapters[side]

        total = await self.store.count_unmatched(side, adapter.name, windows, exclude)
        rows = await self.store.fetch_unmatched(
            side,
            adapter.name,
            windows,
            exclude,
            offset=(page - 1) * page_size,
            limit=page_size,
        )
        return [adapter.normalize(row) for row in rows], total
