"""Database-backed job queue consumed by :mod:`pdc.worker`.

Jobs are rows in ``jobs``.  The API enqueues them in the same transaction
that creates the work they refer to; the worker claims them one at a time.

Usage::

    from pdc.services.job_queue import JobQueue

    await JobQueue.add_process_bulk_upload_job(db, bulk_upload_id=task.id)
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pdc.models.db.job import Job
from pdc.models.enums import JobStatus

logger = logging.getLogger(__name__)

PROCESS_BULK_UPLOAD_TASK = "processBulkUpload"

# Longest error text kept on a failed job row.
MAX_ERROR_LENGTH = 2000


class JobQueue:
    """Enqueue, claim, and settle jobs."""

    @staticmethod
    async def add_job(
        db: AsyncSession, task_identifier: str, payload: dict[str, Any]
    ) -> Job:
        job = Job(
            task_identifier=task_identifier,
            payload=payload,
            status=JobStatus.QUEUED.value,
        )
        db.add(job)
        await db.flush()
        logger.info(
            "Enqueued %s job %s", task_identifier, job.id,
            extra={"job_id": job.id, "task_identifier": task_identifier},
        )
        return job

    @staticmethod
    async def add_process_bulk_upload_job(db: AsyncSession, bulk_upload_id: int) -> Job:
        return await JobQueue.add_job(
            db, PROCESS_BULK_UPLOAD_TASK, {"bulkUploadId": bulk_upload_id}
        )

    @staticmethod
    async def claim_next(db: AsyncSession, worker_id: str) -> Optional[Job]:
        """Claim the oldest runnable job for *worker_id*.

        Returns ``None`` when nothing is queued or another worker won the
        claim.  The caller commits.
        """
        result = await db.execute(
            select(Job)
            .where(Job.status == JobStatus.QUEUED.value, Job.run_at <= func.now())
            .order_by(Job.run_at, Job.id)
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        job = result.scalar_one_or_none()
        if job is None:
            return None

        claimed = await db.execute(
            update(Job)
            .where(Job.id == job.id, Job.status == JobStatus.QUEUED.value)
            .values(
                status=JobStatus.RUNNING.value,
                attempts=Job.attempts + 1,
                locked_by=worker_id,
                locked_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            return None
        await db.refresh(job)
        return job

    @staticmethod
    async def complete(db: AsyncSession, job_id: int) -> None:
        await db.execute(
            update(Job)
            .where(Job.id == job_id)
            .values(status=JobStatus.COMPLETED.value)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    async def fail(db: AsyncSession, job_id: int, error: str) -> None:
        await db.execute(
            update(Job)
            .where(Job.id == job_id)
            .values(
                status=JobStatus.FAILED.value,
                last_error=error[:MAX_ERROR_LENGTH],
            )
            .execution_options(synchronize_session=False)
        )
