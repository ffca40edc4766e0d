from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.db_handlers.base import OwnedDBHandler, check_local_db
from app.models.job import TERMINAL_JOB_STATUSES, Job, can_transition
from app.utils.logger import setup_logger

logger = setup_logger("job_db_handler")


class InvalidJobTransition(Exception):
    def __init__(self, job_id, current: str, new: str):
        super().__init__(f"Job {job_id}: illegal transition {current} -> {new}")
        self.current = current
        self.new = new


class JobDBHandler(OwnedDBHandler[Job]):
    def __init__(self):
        super().__init__(Job)

    @check_local_db
    async def create_job(
        self, obj_dict: dict[str, Any], *, db: AsyncSession = None
    ) -> dict[str, Any]:
        """Create a new job in 'pending' and return it as dict."""
        job = await super().create({**obj_dict, "status": "pending"}, db=db)
        return job.to_dict()

    @check_local_db
    async def update_job_status(
        self,
        job_id: uuid.UUID,
        user_id: uuid.UUID,
        status: str,
        *,
        error_message: str | None = None,
        result_summary: dict[str, Any] | None = None,
        db: AsyncSession = None,
    ) -> Job | None:
        """
        Move a job along pending → processing → completed/failed.

        Re-entering 'processing' counts another attempt. Any other move that the
        state machine does not allow raises InvalidJobTransition.
        """
        job = await self.get_owned(job_id, user_id, db=db)
        if not job:
            logger.warning(f"Job {job_id} not found for status update")
            return None

        if not can_transition(job.status, status):
            raise InvalidJobTransition(job_id, job.status, status)

        now = datetime.now(UTC)
        updated_data: dict[str, Any] = {"status": status}
        if status == "processing":
            updated_data["attempts"] = (job.attempts or 0) + 1
            if job.started_at is None:
                updated_data["started_at"] = now
        if status in TERMINAL_JOB_STATUSES:
            updated_data["completed_at"] = now
        if error_message:
            updated_data["error_message"] = error_message
        if result_summary is not None:
            updated_data["result_summary"] = result_summary

        return await self.update(job, updated_data, db=db)
