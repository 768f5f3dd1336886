"""Matching API router."""

from fastapi import APIRouter, Query, status

from clipmatch.deps import DbSession, JobRunner
from clipmatch.models import Side
from clipmatch.schemas import (
    AutoMatchResult,
    DeleteMatchResult,
    ManualMatchRequest,
    ManualMatchResult,
    MatchPage,
    MatchSortColumn,
    ReportsSummary,
    ReportStats,
    SortDirection,
    UnmatchedPage,
)
from clipmatch.services.aggregator import load_reports_summary
from clipmatch.services.engine import MatchingEngine
from clipmatch.services.errors import MatchingError
from clipmatch.services.store import SqlMatchStore
from clipmatch.utils.exceptions import raise_for_matching_error

router = APIRouter(prefix="/reports", tags=["matching"])


async def _engine_for(db: DbSession, report_id: int) -> MatchingEngine:
    try:
        return await MatchingEngine.for_report(SqlMatchStore(db), report_id)
    except MatchingError as exc:
        raise_for_matching_error(exc)


@router.get("/summary", response_model=ReportsSummary)
async def get_reports_summary(db: DbSession) -> ReportsSummary:
    return await load_reports_summary(SqlMatchStore(db))


@router.get("/{report_id}/stats", response_model=ReportStats)
async def get_report_stats(report_id: int, db: DbSession) -> ReportStats:
    engine = await _engine_for(db, report_id)
    return await engine.get_stats(report_id)


@router.post("/{report_id}/auto-match", response_model=AutoMatchResult)
async def run_auto_match(report_id: int, db: DbSession) -> AutoMatchResult:
    engine = await _engine_for(db, report_id)
    try:
        return await engine.run_auto_match(report_id)
    except MatchingError as exc:
        raise_for_matching_error(exc)


@router.post("/{report_id}/auto-match/jobs", status_code=status.HTTP_202_ACCEPTED)
async def start_auto_match_job(report_id: int, db: DbSession, runner: JobRunner) -> dict[str, object]:
    await _engine_for(db, report_id)
    try:
        runner.start(report_id)
    except MatchingError as exc:
        raise_for_matching_error(exc)
    return {"report_id": report_id, "status": "started"}


@router.delete("/{report_id}/auto-match/jobs")
async def cancel_auto_match_job(report_id: int, runner: JobRunner) -> dict[str, object]:
    cancelled = await runner.cancel(report_id)
    return {"report_id": report_id, "cancelled": cancelled}


@router.post("/{report_id}/matches", response_model=ManualMatchResult, status_code=status.HTTP_201_CREATED)
async def create_manual_match(report_id: int, payload: ManualMatchRequest, db: DbSession) -> ManualMatchResult:
    engine = await _engine_for(db, report_id)
    try:
        return await engine.create_manual_match(report_id, payload.side_a_id, payload.side_b_id, actor=payload.actor)
    except MatchingError as exc:
        raise_for_matching_error(exc)


@router.delete("/{report_id}/matches/{match_id}", response_model=DeleteMatchResult)
async def delete_match(report_id: int, match_id: int, db: DbSession) -> DeleteMatchResult:
    engine = await _engine_for(db, report_id)
    try:
        return await engine.delete_match(match_id, report_id)
    except MatchingError as exc:
        raise_for_matching_error(exc)


@router.get("/{report_id}/matches", response_model=MatchPage)
async def list_matches(
    report_id: int,
    db: DbSession,
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    sort_column: MatchSortColumn = MatchSortColumn.CREATED_AT,
    sort_direction: SortDirection = SortDirection.DESC,
) -> MatchPage:
    engine = await _engine_for(db, report_id)
    try:
        return await engine.list_matches(
            report_id,
            page=page,
            page_size=page_size,
            sort_column=sort_column,
            sort_direction=sort_direction,
        )
    except MatchingError as exc:
        raise_for_matching_error(exc)


@router.get("/{report_id}/unmatched/{side}", response_model=UnmatchedPage)
async def list_unmatched(
    report_id: int,
    side: Side,
    db: DbSession,
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
) -> UnmatchedPage:
    engine = await _engine_for(db, report_id)
    try:
        return await engine.list_unmatched(report_id, side, page=page, page_size=page_size)
    except MatchingError as exc:
        raise_for_matching_error(exc)
