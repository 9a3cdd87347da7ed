"""Bulk upload task persistence (the Task Store).

The API creates tasks ``pending``; the worker moves them through
``in_progress`` to ``completed`` or ``failed``.  Updates are written as
single UPDATE statements so callers never depend on a loaded ORM instance
surviving a rollback.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pdc.exceptions import NotFoundError
from pdc.models.db.bulk_upload import BulkUploadTask
from pdc.models.enums import BulkUploadStatus

logger = logging.getLogger(__name__)

_UNSET = object()


class BulkUploadService:
    """Service layer for bulk upload task operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        source_id: int,
        file_name: str,
        source_key: str,
        created_by: int,
    ) -> BulkUploadTask:
        task = BulkUploadTask(
            source_id=source_id,
            file_name=file_name,
            source_key=source_key,
            status=BulkUploadStatus.PENDING.value,
            created_by=created_by,
        )
        db.add(task)
        await db.flush()
        await db.refresh(task)
        logger.info(
            "Created bulk upload task %s for %s", task.id, file_name,
            extra={"bulk_upload_id": task.id, "source_key": source_key},
        )
        return task

    @staticmethod
    async def load(db: AsyncSession, bulk_upload_id: int) -> BulkUploadTask:
        """Load a task by id.

        Raises:
            NotFoundError: If no task has this id.
        """
        result = await db.execute(
            select(BulkUploadTask)
            .where(BulkUploadTask.id == bulk_upload_id)
            .execution_options(populate_existing=True)
        )
        task = result.scalar_one_or_none()
        if task is None:
            raise NotFoundError("BulkUploadTask", bulk_upload_id)
        return task

    @staticmethod
    async def update(
        db: AsyncSession,
        bulk_upload_id: int,
        *,
        status: Optional[BulkUploadStatus] = None,
        file_size: object = _UNSET,
        source_key: Optional[str] = None,
    ) -> None:
        """Write a partial set of fields to a task.

        Only the arguments that are supplied are written.
        """
        values: dict[str, object] = {}
        if status is not None:
            values["status"] = BulkUploadStatus(status).value
        if file_size is not _UNSET:
            values["file_size"] = file_size
        if source_key is not None:
            values["source_key"] = source_key
        if not values:
            return
        result = await db.execute(
            update(BulkUploadTask)
            .where(BulkUploadTask.id == bulk_upload_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("BulkUploadTask", bulk_upload_id)

    @staticmethod
    async def finish(
        db: AsyncSession, bulk_upload_id: int, status: BulkUploadStatus
    ) -> bool:
        """Move an ``in_progress`` task to *status*.

        Returns ``False`` when the task is no longer ``in_progress`` (for
        example because the stale-task reclaim already failed it); the row
        is then left unchanged.
        """
        result = await db.execute(
            update(BulkUploadTask)
            .where(
                BulkUploadTask.id == bulk_upload_id,
                BulkUploadTask.status == BulkUploadStatus.IN_PROGRESS.value,
            )
            .values(status=BulkUploadStatus(status).value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    @staticmethod
    async def list_bundle(
        db: AsyncSession,
        limit: int,
        offset: int,
        created_by: Optional[int] = None,
    ) -> tuple[list[BulkUploadTask], int]:
        """Return one page of tasks (newest first) and the total count."""
        query = select(BulkUploadTask)
        count_query = select(func.count()).select_from(BulkUploadTask)
        if created_by is not None:
            query = query.where(BulkUploadTask.created_by == created_by)
            count_query = count_query.where(BulkUploadTask.created_by == created_by)

        result = await db.execute(
            query.order_by(BulkUploadTask.id.desc()).limit(limit).offset(offset)
        )
        total = (await db.execute(count_query)).scalar_one()
        return list(result.scalars().all()), total

    @staticmethod
    async def fail_stale_in_progress(db: AsyncSession, older_than: datetime) -> list[int]:
        """Mark tasks stuck ``in_progress`` since before *older_than* as failed.

        Returns the ids of the tasks that were failed.
        """
        result = await db.execute(
            select(BulkUploadTask.id).where(
                BulkUploadTask.status == BulkUploadStatus.IN_PROGRESS.value,
                BulkUploadTask.updated_at < older_than,
            )
        )
        stale_ids = list(result.scalars().all())
        if not stale_ids:
            return []
        await db.execute(
            update(BulkUploadTask)
            .where(
                BulkUploadTask.id.in_(stale_ids),
                BulkUploadTask.status == BulkUploadStatus.IN_PROGRESS.value,
            )
            .values(status=BulkUploadStatus.FAILED.value)
            .execution_options(synchronize_session=False)
        )
        logger.warning(
            "Failed %d stale bulk upload task(s)", len(stale_ids),
            extra={"bulk_upload_ids": stale_ids},
        )
        return stale_ids
