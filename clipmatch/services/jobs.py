"""Background auto-match jobs, one per report."""

from __future__ import annotations

import asyncio
from contextlib import suppress

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clipmatch.config import Settings, settings
from clipmatch.database import get_session_maker
from clipmatch.logger import get_logger
from clipmatch.schemas import AutoMatchResult
from clipmatch.services.engine import MatchingEngine
from clipmatch.services.errors import AutoMatchInterruptedError, ReportBusyError
from clipmatch.services.store import SqlMatchStore

logger = get_logger(__name__)


class AutoMatchJobRunner:
    """Runs auto-match as asyncio tasks with their own sessions and a timeout."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession] | None = None,
        config: Settings | None = None,
    ):
        self._sessionmaker = sessionmaker
        self.config = config or settings
        self._jobs: dict[int, asyncio.Task[AutoMatchResult]] = {}

    def is_running(self, report_id: int) -> bool:
        task = self._jobs.get(report_id)
        return task is not None and not task.done()

    def start(self, report_id: int) -> asyncio.Task[AutoMatchResult]:
        """Schedule auto-match for a report; at most one job per report."""
        if self.is_running(report_id):
            raise ReportBusyError(report_id)
        task = asyncio.create_task(self._run(report_id), name=f"auto-match-{report_id}")
        self._jobs[report_id] = task
        task.add_done_callback(lambda t: self._on_done(report_id, t))
        logger.info("Auto-match job started", report_id=report_id)
        return task

    def _on_done(self, report_id: int, task: asyncio.Task[AutoMatchResult]) -> None:
        if self._jobs.get(report_id) is task:
            del self._jobs[report_id]
        if task.cancelled():
            logger.warning("Auto-match job cancelled", report_id=report_id)
        elif task.exception() is not None:
            exc = task.exception()
            logger.error(
                "Auto-match job failed",
                report_id=report_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        else:
            logger.info("Auto-match job finished", report_id=report_id, new_matches=task.result().new_matches)

    async def _run(self, report_id: int) -> AutoMatchResult:
        session_factory = self._sessionmaker or get_session_maker()
        async with session_factory() as session:
            store = SqlMatchStore(session, self.config)
            engine = await MatchingEngine.for_report(store, report_id, self.config)
            try:
                return await asyncio.wait_for(
                    engine.run_auto_match(report_id),
                    timeout=self.config.auto_match_timeout_seconds,
                )
            except TimeoutError as exc:
                raise AutoMatchInterruptedError(report_id, engine.committed, cause=exc) from exc

    async def wait(self, report_id: int) -> AutoMatchResult | None:
        """Wait for a report's running job; None when nothing is running."""
        task = self._jobs.get(report_id)
        if task is None:
            return None
        return await task

    async def cancel(self, report_id: int) -> bool:
        """Cancel a report's job and wait for it to settle. False when none runs."""
        task = self._jobs.get(report_id)
        if task is None or task.done():
            return False
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        return True

    async def shutdown(self) -> None:
        for report_id in list(self._jobs):
            await self.cancel(report_id)


job_runner = AutoMatchJobRunner()
