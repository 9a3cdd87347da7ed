"""Bulk uploads router.

``POST /api/v1/bulkUploads`` registers a CSV that has already been put in
the object store under ``unprocessed/`` and queues it for the worker.  The
task row and its job are written in the same transaction.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from pdc.database import get_db
from pdc.deps import Pagination, _safe_error, get_current_user, get_pagination
from pdc.exceptions import NotFoundError
from pdc.models.bulk_upload import (
    BulkUploadBundle,
    BulkUploadCreate,
    BulkUploadResponse,
)
from pdc.models.db.user import User
from pdc.services.bulk_upload_service import BulkUploadService
from pdc.services.job_queue import JobQueue
from pdc.services.user_service import UserService
from pdc.storage import UNPROCESSED_KEY_PREFIX, is_unprocessed_key

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["bulkUploads"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_created_by(created_by: Optional[str], current_user: User) -> Optional[int]:
    """Accept ``me`` or a positive user id."""
    if created_by is None:
        return None
    if created_by == "me":
        return current_user.id
    try:
        user_id = int(created_by)
    except ValueError:
        user_id = 0
    if user_id < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="createdBy must be 'me' or a positive user id.",
        )
    return user_id


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/bulkUploads",
    response_model=BulkUploadResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_bulk_upload(
    body: BulkUploadCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a pending bulk upload task and queue it for processing.

    Raises:
        HTTPException 400: ``sourceKey`` is not in the unprocessed namespace.
        HTTPException 409: The referenced source does not exist.
    """
    if not is_unprocessed_key(body.source_key):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"sourceKey must be unprocessed, and begin with '{UNPROCESSED_KEY_PREFIX}/'.",
        )

    try:
        await UserService.assert_source_exists(db, body.source_id)
        task = await BulkUploadService.create(
            db,
            source_id=body.source_id,
            file_name=body.file_name,
            source_key=body.source_key,
            created_by=current_user.id,
        )
        await JobQueue.add_process_bulk_upload_job(db, bulk_upload_id=task.id)
        return BulkUploadResponse.model_validate(task)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The related entity does not exist",
        ) from e
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("creating bulk upload", e),
        ) from e


@router.get(
    "/bulkUploads",
    response_model=BulkUploadBundle,
    response_model_by_alias=True,
)
async def list_bulk_uploads(
    created_by: Optional[str] = Query(None, alias="createdBy"),
    pagination: Pagination = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List bulk upload tasks, newest first."""
    created_by_id = _parse_created_by(created_by, current_user)
    try:
        tasks, total = await BulkUploadService.list_bundle(
            db,
            limit=pagination.limit,
            offset=pagination.offset,
            created_by=created_by_id,
        )
        return BulkUploadBundle(
            entries=[BulkUploadResponse.model_validate(t) for t in tasks],
            total=total,
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing bulk uploads", e),
        ) from e


@router.get(
    "/bulkUploads/{bulk_upload_id}",
    response_model=BulkUploadResponse,
    response_model_by_alias=True,
)
async def get_bulk_upload(
    bulk_upload_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get a single bulk upload task.

    Raises:
        HTTPException 404: No task has this id.
    """
    try:
        task = await BulkUploadService.load(db, bulk_upload_id)
        return BulkUploadResponse.model_validate(task)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("loading bulk upload", e),
        ) from e
