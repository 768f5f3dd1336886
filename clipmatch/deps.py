"""Common FastAPI dependencies for consistent type annotations.

Usage:
    from clipmatch.deps import DbSession, JobRunner

    async def my_endpoint(db: DbSession, runner: JobRunner):
        ...
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clipmatch.database import get_db
from clipmatch.services.jobs import AutoMatchJobRunner, job_runner


def get_job_runner() -> AutoMatchJobRunner:
    return job_runner


DbSession = Annotated[AsyncSession, Depends(get_db)]
JobRunner = Annotated[AutoMatchJobRunner, Depends(get_job_runner)]

__all__ = ["DbSession", "JobRunner", "get_job_runner"]
