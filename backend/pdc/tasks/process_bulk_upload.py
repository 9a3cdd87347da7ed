"""Bulk upload ingestion task.

Turns one bulk upload CSV into an opportunity, an application form with one
field per column, and one proposal (with a single version and one field
value per cell) per data row.

Task status moves ``pending -> in_progress -> completed | failed`` and never
backwards.  A task that is not ``pending`` when the job arrives is left
alone, which makes duplicate job delivery harmless.

Failure handling:

- malformed payload: logged and dropped, nothing is written;
- source key outside ``unprocessed/``: task failed, nothing else happens;
- download failure: task failed, no cleanup is attempted;
- structural CSV problems: task failed before any record is created;
- cell type mismatches: stored as ``is_valid = False``, never an error;
- housekeeping (file size, temp file removal, moving the source object):
  each step is guarded on its own and only logs a warning; the temp file
  is removed even when the job is cancelled.

The final status is only written while the task is still ``in_progress``,
so a task the stale-task reclaim has already failed stays failed.

Rows are processed strictly in file order and each row is committed before
the next one starts, so ``external_id`` is the 1-based row number.
"""

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

import aiofiles.os
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdc.bulk_upload_csv import assert_bulk_upload_csv_is_valid, iter_data_rows
from pdc.database import get_session_factory
from pdc.exceptions import BulkUploadCsvError, NotFoundError
from pdc.field_validation import field_value_is_valid
from pdc.models.bulk_upload import ProcessBulkUploadJobPayload
from pdc.models.enums import BulkUploadStatus
from pdc.services.base_field_service import BaseFieldService
from pdc.services.bulk_upload_service import BulkUploadService
from pdc.services.changemaker_service import ChangemakerService
from pdc.services.opportunity_service import OpportunityService
from pdc.services.proposal_service import ProposalService
from pdc.storage import bulk_upload_storage, get_processed_key, is_unprocessed_key

logger = logging.getLogger(__name__)

CHANGEMAKER_TAX_ID_SHORT_CODE = "organization_tax_id"
CHANGEMAKER_NAME_SHORT_CODE = "organization_name"


class ObjectStore(Protocol):
    async def download_to_file(self, key: str, path: str) -> int: ...

    async def move(self, source_key: str, destination_key: str) -> None: ...


@dataclass(frozen=True)
class _TaskSnapshot:
    """Task attributes captured before any rollback can expire the ORM row."""

    id: int
    source_key: str
    source_id: int
    created_by: int
    created_at: datetime


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _download_to_temporary_file(storage: ObjectStore, key: str) -> str:
    fd, path = tempfile.mkstemp(prefix="pdc-bulk-upload-", suffix=".csv")
    os.close(fd)
    try:
        await storage.download_to_file(key, path)
    except BaseException:
        await aiofiles.os.remove(path)
        raise
    return path


def _column_index(short_codes: list[str], short_code: str) -> Optional[int]:
    try:
        return short_codes.index(short_code)
    except ValueError:
        return None


async def _link_changemaker(
    db: AsyncSession,
    proposal_id: int,
    record: list[str],
    tax_id_index: Optional[int],
    name_index: Optional[int],
) -> None:
    if tax_id_index is None:
        return
    tax_id = record[tax_id_index].strip()
    if not tax_id:
        return
    name = record[name_index].strip() if name_index is not None else None
    changemaker = await ChangemakerService.create_or_load(db, tax_id, name)
    if changemaker is not None:
        await ChangemakerService.link_to_proposal(db, changemaker.id, proposal_id)


async def _ingest_csv(db: AsyncSession, task: _TaskSnapshot, csv_path: str) -> int:
    """Validate the CSV and materialise it.  Returns the number of rows."""
    registry = await BaseFieldService.load_registry(db)
    short_codes = await asyncio.to_thread(
        assert_bulk_upload_csv_is_valid, csv_path, registry
    )
    data_types = [registry.get(short_code).data_type for short_code in short_codes]

    opportunity = await OpportunityService.create_opportunity(
        db, title=f"Bulk Upload ({task.created_at.isoformat()})"
    )
    application_form = await OpportunityService.create_application_form(
        db, opportunity.id
    )
    form_fields = await OpportunityService.create_application_form_fields(
        db, application_form.id, short_codes, registry
    )
    form_field_ids = [form_field.id for form_field in form_fields]
    opportunity_id = opportunity.id
    application_form_id = application_form.id
    await db.commit()

    tax_id_index = _column_index(short_codes, CHANGEMAKER_TAX_ID_SHORT_CODE)
    name_index = _column_index(short_codes, CHANGEMAKER_NAME_SHORT_CODE)

    record_number = 0
    rows = iter_data_rows(csv_path)
    while True:
        # File reads stay off the event loop.
        record = await asyncio.to_thread(next, rows, None)
        if record is None:
            break
        record_number += 1
        proposal = await ProposalService.create_proposal(
            db,
            opportunity_id=opportunity_id,
            external_id=str(record_number),
            created_by=task.created_by,
        )
        proposal_version = await ProposalService.create_proposal_version(
            db,
            proposal_id=proposal.id,
            application_form_id=application_form_id,
            source_id=task.source_id,
            created_by=task.created_by,
        )
        await _link_changemaker(db, proposal.id, record, tax_id_index, name_index)
        await ProposalService.create_field_values(
            db,
            proposal_version.id,
            [
                (
                    form_field_ids[position],
                    position,
                    value,
                    field_value_is_valid(value, data_types[position]),
                )
                for position, value in enumerate(record)
            ],
        )
        await db.commit()
    return record_number


async def _run_batch(
    db: AsyncSession, task: _TaskSnapshot, csv_path: str, log_extra: dict
) -> bool:
    """Ingest the file.  Returns ``True`` when the batch failed."""
    try:
        row_count = await _ingest_csv(db, task, csv_path)
    except BulkUploadCsvError as exc:
        await db.rollback()
        logger.info("Bulk upload CSV is invalid: %s", exc, extra=log_extra)
        return True
    except Exception:
        await db.rollback()
        logger.info("Bulk upload has failed", exc_info=True, extra=log_extra)
        return True
    logger.info("Bulk upload ingested %d row(s)", row_count, extra=log_extra)
    return False


async def _record_file_size(
    db: AsyncSession, bulk_upload_id: int, csv_path: str, log_extra: dict
) -> None:
    try:
        file_size = (await aiofiles.os.stat(csv_path)).st_size
        await BulkUploadService.update(db, bulk_upload_id, file_size=file_size)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.warning(
            "Unable to update the fileSize for bulk upload %s", bulk_upload_id,
            exc_info=True, extra=log_extra,
        )


async def _remove_temporary_file(csv_path: str, log_extra: dict) -> None:
    try:
        await aiofiles.os.remove(csv_path)
    except OSError:
        logger.warning(
            "Cleanup of a temporary file failed (%s)", csv_path,
            exc_info=True, extra=log_extra,
        )


async def _set_status(
    db: AsyncSession, bulk_upload_id: int, status: BulkUploadStatus
) -> None:
    await BulkUploadService.update(db, bulk_upload_id, status=status)
    await db.commit()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def process_bulk_upload_task(
    payload: Any,
    *,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    storage: Optional[ObjectStore] = None,
) -> None:
    """Process one bulk upload job end to end.

    Args:
        payload: Raw job payload; must look like ``{"bulkUploadId": <int>}``.
        session_factory: Session factory to use instead of the configured one.
        storage: Object store to use instead of :data:`bulk_upload_storage`.
    """
    try:
        job = ProcessBulkUploadJobPayload.model_validate(payload)
    except ValidationError as exc:
        logger.error(
            "Malformed bulk upload job payload",
            extra={"payload": payload, "errors": exc.errors()},
        )
        return

    session_factory = session_factory or get_session_factory()
    storage = storage or bulk_upload_storage
    logger.debug(
        "Started processBulkUpload job for bulk upload %s", job.bulk_upload_id
    )

    async with session_factory() as db:
        try:
            loaded = await BulkUploadService.load(db, job.bulk_upload_id)
        except NotFoundError:
            logger.error(
                "Bulk upload referenced by job does not exist",
                extra={"bulk_upload_id": job.bulk_upload_id},
            )
            return

        if loaded.status != BulkUploadStatus.PENDING.value:
            logger.warning(
                "Bulk upload cannot be processed because it is not in a PENDING state",
                extra={"bulk_upload_id": loaded.id, "status": loaded.status},
            )
            return

        task = _TaskSnapshot(
            id=loaded.id,
            source_key=loaded.source_key,
            source_id=loaded.source_id,
            created_by=loaded.created_by,
            created_at=loaded.created_at,
        )
        log_extra = {"bulk_upload_id": task.id, "source_key": task.source_key}

        if not is_unprocessed_key(task.source_key):
            logger.info(
                "Bulk upload cannot be processed because its sourceKey is not unprocessed",
                extra=log_extra,
            )
            await _set_status(db, task.id, BulkUploadStatus.FAILED)
            return

        try:
            await _set_status(db, task.id, BulkUploadStatus.IN_PROGRESS)
            csv_path = await _download_to_temporary_file(storage, task.source_key)
        except Exception:
            logger.warning(
                "Download of bulk upload file failed", exc_info=True, extra=log_extra
            )
            await db.rollback()
            await _set_status(db, task.id, BulkUploadStatus.FAILED)
            return

        try:
            has_failed = await _run_batch(db, task, csv_path, log_extra)
            await _record_file_size(db, task.id, csv_path, log_extra)
        finally:
            # Also runs when the worker cancels the job on timeout.
            await _remove_temporary_file(csv_path, log_extra)

        processed_key = get_processed_key(task.id)
        try:
            await storage.move(task.source_key, processed_key)
            await BulkUploadService.update(db, task.id, source_key=processed_key)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.warning(
                "Moving the bulk upload file to %s failed", processed_key,
                exc_info=True, extra=log_extra,
            )

        final_status = (
            BulkUploadStatus.FAILED if has_failed else BulkUploadStatus.COMPLETED
        )
        finished = await BulkUploadService.finish(db, task.id, final_status)
        await db.commit()
        if not finished:
            logger.warning(
                "Bulk upload %s is no longer in progress; status left unchanged",
                task.id, extra=log_extra,
            )
            return
        logger.info(
            "Bulk upload finished with status %s", final_status.value, extra=log_extra
        )


async def fail_bulk_upload_after_timeout(
    payload: Any,
    *,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> None:
    """Mark the task of a timed-out job failed, if it is still in progress."""
    try:
        job = ProcessBulkUploadJobPayload.model_validate(payload)
    except ValidationError:
        return
    session_factory = session_factory or get_session_factory()
    async with session_factory() as db:
        failed = await BulkUploadService.finish(
            db, job.bulk_upload_id, BulkUploadStatus.FAILED
        )
        await db.commit()
        if failed:
            logger.warning(
                "Bulk upload %s failed after its job timed out", job.bulk_upload_id,
                extra={"bulk_upload_id": job.bulk_upload_id},
            )
