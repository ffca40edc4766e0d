import uuid

from fastapi import Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_app_db
from app.db_handlers.job import JobDBHandler
from app.dependencies.auth import get_current_user
from app.exceptions import InputValidationError, NotFoundError
from app.models import Job, User


async def get_owned_job(
    job_id: str = Path(..., description="The ID of the job to read"),
    db: AsyncSession = Depends(get_app_db),
    current_user: User = Depends(get_current_user),
) -> Job:
    """
    Dependency to get a job owned by the current user.

    A job that does not exist and a job owned by someone else both raise 404,
    so callers cannot discover other users' job ids.
    """
    try:
        job_uuid = uuid.UUID(job_id)
    except ValueError as e:
        raise InputValidationError("Invalid job_id format") from e

    job = await JobDBHandler().get_owned(job_uuid, current_user.id, db=db)
    if not job:
        raise NotFoundError("Job not found")

    return job
