"""Per-report mutual exclusion through the report's run token."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from uuid import uuid4

from clipmatch.logger import get_logger
from clipmatch.services.errors import ReportBusyError
from clipmatch.services.store import MatchStore

logger = get_logger(__name__)


@asynccontextmanager
async def report_run_lock(store: MatchStore, report_id: int, ttl: timedelta) -> AsyncIterator[str]:
    """Hold the report's run token for the duration of the block.

    Raises NotFoundError for a missing report and ReportBusyError when another
    operation holds an unexpired token. When the block raises, its uncommitted
    work is rolled back before the token is released.
    """
    await store.get_report(report_id)
    token = uuid4().hex
    if not await store.acquire_run_token(report_id, token, ttl):
        logger.info("Report busy", report_id=report_id)
        raise ReportBusyError(report_id)

    try:
        yield token
    except BaseException:
        await store.rollback()
        raise
    finally:
        await store.release_run_token(report_id, token)
