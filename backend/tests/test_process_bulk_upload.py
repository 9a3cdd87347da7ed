"""
Integration Tests for the processBulkUpload Task

Runs process_bulk_upload_task end to end against an in-memory SQLite
database and a fake object store, covering:
- precondition handling (payload, missing task, status, source namespace)
- structural CSV failures (nothing but the task row changes)
- the success path (opportunity, form, proposals, field values)
- per-cell validity flags and changemaker linkage
- housekeeping (file size, temporary file, object relocation)
- the final status never overwriting a task already failed elsewhere

Usage:
    cd backend && pytest tests/test_process_bulk_upload.py -v
"""

import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import List
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from conftest import (
    FakeStorage,
    load_fixture,
    make_base_fields,
    make_bulk_upload,
    make_user_and_source,
)
from pdc.models.db import (
    ApplicationForm,
    ApplicationFormField,
    BulkUploadTask,
    Changemaker,
    ChangemakerProposal,
    Opportunity,
    Proposal,
    ProposalFieldValue,
    ProposalVersion,
)
from pdc.models.enums import BulkUploadStatus
from pdc.services.bulk_upload_service import BulkUploadService
from pdc.tasks.process_bulk_upload import process_bulk_upload_task


# ============================================================================
# HELPERS
# ============================================================================

async def count_rows(session_factory, model) -> int:
    async with session_factory() as db:
        return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def load_task(session_factory, task_id: int) -> BulkUploadTask:
    async with session_factory() as db:
        return await db.get(BulkUploadTask, task_id)


async def load_all(session_factory, model, *order_by) -> List:
    async with session_factory() as db:
        result = await db.execute(select(model).order_by(*(order_by or (model.id,))))
        return list(result.scalars().all())


async def count_created_records(session_factory) -> int:
    total = 0
    for model in (
        Opportunity,
        ApplicationForm,
        ApplicationFormField,
        Proposal,
        ProposalVersion,
        ProposalFieldValue,
        Changemaker,
        ChangemakerProposal,
    ):
        total += await count_rows(session_factory, model)
    return total


@pytest.fixture
async def seeded(session_factory):
    """Register base fields, a user, and a source."""
    base_field_ids = await make_base_fields(session_factory)
    user_id, source_id = await make_user_and_source(session_factory)
    return {"base_field_ids": base_field_ids, "user_id": user_id, "source_id": source_id}


async def run_upload(session_factory, seeded, fixture_name: str, source_key: str = "unprocessed/upload.csv"):
    """Create a pending task for *fixture_name* and process it."""
    return await run_upload_content(
        session_factory, seeded, load_fixture(fixture_name), source_key, fixture_name
    )


async def run_upload_content(
    session_factory,
    seeded,
    content: bytes,
    source_key: str = "unprocessed/upload.csv",
    file_name: str = "upload.csv",
):
    """Create a pending task whose file holds *content* and process it."""
    storage = FakeStorage({source_key: content})
    task_id = await make_bulk_upload(
        session_factory,
        seeded["user_id"],
        seeded["source_id"],
        source_key=source_key,
        file_name=file_name,
    )
    await process_bulk_upload_task(
        {"bulkUploadId": task_id}, session_factory=session_factory, storage=storage
    )
    return task_id, storage


# ============================================================================
# PRECONDITION TESTS
# ============================================================================

class TestPreconditions:
    """Jobs that must not start processing."""

    @pytest.mark.parametrize(
        "payload",
        [{}, {"bulkUploadId": "1"}, {"bulkUploadId": 0}, {"bulkUploadId": -3}, {"id": 1}, "1", None, [1]],
    )
    async def test_malformed_payload_changes_nothing(self, session_factory, seeded, payload):
        storage = FakeStorage({"unprocessed/upload.csv": load_fixture("valid.csv")})
        task_id = await make_bulk_upload(
            session_factory, seeded["user_id"], seeded["source_id"],
            source_key="unprocessed/upload.csv",
        )

        await process_bulk_upload_task(payload, session_factory=session_factory, storage=storage)

        task = await load_task(session_factory, task_id)
        assert task.status == "pending"
        assert storage.downloads == []

    async def test_missing_task_changes_nothing(self, session_factory, seeded):
        storage = FakeStorage()
        await process_bulk_upload_task(
            {"bulkUploadId": 9999}, session_factory=session_factory, storage=storage
        )
        assert storage.downloads == []
        assert await count_created_records(session_factory) == 0

    @pytest.mark.parametrize("status", ["in_progress", "completed", "failed"])
    async def test_task_not_pending_is_left_alone(self, session_factory, seeded, status):
        storage = FakeStorage({"unprocessed/upload.csv": load_fixture("valid.csv")})
        task_id = await make_bulk_upload(
            session_factory, seeded["user_id"], seeded["source_id"],
            source_key="unprocessed/upload.csv", status=status,
        )

        await process_bulk_upload_task(
            {"bulkUploadId": task_id}, session_factory=session_factory, storage=storage
        )

        task = await load_task(session_factory, task_id)
        assert task.status == status
        assert task.file_size is None
        assert storage.downloads == []
        assert await count_created_records(session_factory) == 0

    async def test_processed_source_key_fails_task(self, session_factory, seeded):
        storage = FakeStorage({"bulkUploads/1": load_fixture("valid.csv")})
        task_id = await make_bulk_upload(
            session_factory, seeded["user_id"], seeded["source_id"],
            source_key="bulkUploads/1",
        )

        await process_bulk_upload_task(
            {"bulkUploadId": task_id}, session_factory=session_factory, storage=storage
        )

        task = await load_task(session_factory, task_id)
        assert task.status == "failed"
        assert task.source_key == "bulkUploads/1"
        assert task.file_size is None
        assert storage.downloads == []
        assert storage.moves == []
        assert await count_created_records(session_factory) == 0

    async def test_second_delivery_of_a_job_is_a_no_op(self, session_factory, seeded):
        task_id, storage = await run_upload(session_factory, seeded, "valid.csv")
        proposals_after_first_run = await count_rows(session_factory, Proposal)

        await process_bulk_upload_task(
            {"bulkUploadId": task_id}, session_factory=session_factory, storage=storage
        )

        assert await count_rows(session_factory, Proposal) == proposals_after_first_run
        assert await count_rows(session_factory, Opportunity) == 1
        assert len(storage.downloads) == 1


# ============================================================================
# DOWNLOAD FAILURE TESTS
# ============================================================================

class TestDownloadFailure:
    """The source object cannot be fetched."""

    async def test_missing_object_fails_task_without_cleanup(self, session_factory, seeded):
        storage = FakeStorage()
        task_id = await make_bulk_upload(
            session_factory, seeded["user_id"], seeded["source_id"],
            source_key="unprocessed/missing.csv",
        )

        await process_bulk_upload_task(
            {"bulkUploadId": task_id}, session_factory=session_factory, storage=storage
        )

        task = await load_task(session_factory, task_id)
        assert task.status == "failed"
        assert task.source_key == "unprocessed/missing.csv"
        assert task.file_size is None
        assert storage.moves == []
        assert await count_created_records(session_factory) == 0


# ============================================================================
# STRUCTURAL FAILURE TESTS
# ============================================================================

class TestStructuralFailures:
    """Files rejected before any record is created."""

    @pytest.mark.parametrize(
        "fixture_name",
        ["empty.csv", "invalid_short_code.csv", "missing_required_column.csv", "ragged_rows.csv"],
    )
    async def test_invalid_file_creates_nothing(self, session_factory, seeded, fixture_name):
        task_id, storage = await run_upload(session_factory, seeded, fixture_name)

        task = await load_task(session_factory, task_id)
        assert task.status == "failed"
        assert await count_created_records(session_factory) == 0

    async def test_invalid_file_is_still_cleaned_up(self, session_factory, seeded):
        content = load_fixture("invalid_short_code.csv")
        task_id, storage = await run_upload(session_factory, seeded, "invalid_short_code.csv")

        task = await load_task(session_factory, task_id)
        assert task.file_size == len(content)
        assert task.source_key == f"bulkUploads/{task_id}"
        assert storage.moves == [("unprocessed/upload.csv", f"bulkUploads/{task_id}")]

    async def test_base_field_registered_after_startup_is_accepted(self, session_factory, seeded):
        """The registry is read fresh for every run."""
        task_id, _ = await run_upload(session_factory, seeded, "invalid_short_code.csv")
        assert (await load_task(session_factory, task_id)).status == "failed"

        await make_base_fields(session_factory, [("not_a_field", "string")])
        task_id, _ = await run_upload(session_factory, seeded, "invalid_short_code.csv")
        assert (await load_task(session_factory, task_id)).status == "completed"

    async def test_blank_line_in_multi_column_file_fails_task(self, session_factory, seeded):
        content = (
            b"organization_name,proposal_submitter_email\n"
            b"Acme,a@philanthropy.org\n"
            b"\n"
            b"Beta,b@philanthropy.org\n"
        )
        task_id, _ = await run_upload_content(session_factory, seeded, content)

        assert (await load_task(session_factory, task_id)).status == "failed"
        assert await count_created_records(session_factory) == 0


# ============================================================================
# SUCCESS PATH TESTS
# ============================================================================

class TestSuccessfulUpload:
    """A structurally valid file is fully materialised."""

    async def test_two_row_upload(self, session_factory, seeded):
        content = load_fixture("valid.csv")
        task_id, storage = await run_upload(session_factory, seeded, "valid.csv")

        task = await load_task(session_factory, task_id)
        assert task.status == "completed"
        assert task.file_size == len(content)
        assert not task.source_key.startswith("unprocessed/")
        assert task.source_key == f"bulkUploads/{task_id}"
        assert f"bulkUploads/{task_id}" in storage.objects

        proposals = await load_all(session_factory, Proposal)
        assert [p.external_id for p in proposals] == ["1", "2"]
        assert all(p.created_by == seeded["user_id"] for p in proposals)

        versions = await load_all(session_factory, ProposalVersion)
        assert len(versions) == 2
        assert [v.proposal_id for v in versions] == [p.id for p in proposals]
        assert all(v.version == 1 for v in versions)
        assert all(v.source_id == seeded["source_id"] for v in versions)

        values = await load_all(
            session_factory, ProposalFieldValue,
            ProposalFieldValue.proposal_version_id, ProposalFieldValue.position,
        )
        assert [(v.position, v.value) for v in values] == [
            (0, "Foo LLC."),
            (1, "foo@philanthropy.org"),
            (0, "Bar Inc."),
            (1, "bar@philanthropy.org"),
        ]
        assert all(v.is_valid for v in values)

    async def test_opportunity_and_form_are_created_once(self, session_factory, seeded):
        task_id, _ = await run_upload(session_factory, seeded, "valid.csv")

        opportunities = await load_all(session_factory, Opportunity)
        assert len(opportunities) == 1
        assert opportunities[0].title.startswith("Bulk Upload (")

        forms = await load_all(session_factory, ApplicationForm)
        assert len(forms) == 1
        assert forms[0].opportunity_id == opportunities[0].id
        assert forms[0].version == 1

        fields = await load_all(session_factory, ApplicationFormField, ApplicationFormField.position)
        assert [f.position for f in fields] == [0, 1]
        assert [f.base_field_id for f in fields] == [
            seeded["base_field_ids"]["organization_name"],
            seeded["base_field_ids"]["proposal_submitter_email"],
        ]
        assert fields[0].label == "Organization Name"

        versions = await load_all(session_factory, ProposalVersion)
        assert all(v.application_form_id == forms[0].id for v in versions)

    async def test_field_values_reference_their_column(self, session_factory, seeded):
        await run_upload(session_factory, seeded, "valid.csv")

        fields = {f.id: f for f in await load_all(session_factory, ApplicationFormField)}
        for value in await load_all(session_factory, ProposalFieldValue):
            assert fields[value.application_form_field_id].position == value.position

    async def test_header_only_file_completes_with_no_proposals(self, session_factory, seeded):
        key = "unprocessed/header-only.csv"
        storage = FakeStorage({key: b"proposal_submitter_email\n"})
        task_id = await make_bulk_upload(
            session_factory, seeded["user_id"], seeded["source_id"], source_key=key
        )

        await process_bulk_upload_task(
            {"bulkUploadId": task_id}, session_factory=session_factory, storage=storage
        )

        assert (await load_task(session_factory, task_id)).status == "completed"
        assert await count_rows(session_factory, Opportunity) == 1
        assert await count_rows(session_factory, Proposal) == 0

    async def test_empty_cell_row_in_single_column_file_is_kept(self, session_factory, seeded):
        content = b"proposal_submitter_email\na@philanthropy.org\n\nb@philanthropy.org\n"
        task_id, _ = await run_upload_content(session_factory, seeded, content)

        assert (await load_task(session_factory, task_id)).status == "completed"
        proposals = await load_all(session_factory, Proposal)
        assert [p.external_id for p in proposals] == ["1", "2", "3"]

        values = await load_all(
            session_factory, ProposalFieldValue, ProposalFieldValue.proposal_version_id
        )
        assert [v.value for v in values] == ["a@philanthropy.org", "", "b@philanthropy.org"]
        assert [v.is_valid for v in values] == [True, False, True]

    async def test_file_reads_run_in_worker_threads(self, session_factory, seeded):
        from pdc.bulk_upload_csv import assert_bulk_upload_csv_is_valid

        original_to_thread = asyncio.to_thread
        offloaded = []

        async def recording_to_thread(func, *args, **kwargs):
            offloaded.append(func)
            return await original_to_thread(func, *args, **kwargs)

        with patch.object(asyncio, "to_thread", side_effect=recording_to_thread):
            task_id, _ = await run_upload(session_factory, seeded, "valid.csv")

        assert (await load_task(session_factory, task_id)).status == "completed"
        assert offloaded[0] is assert_bulk_upload_csv_is_valid
        # One read per data row plus the read that finds the end of the file.
        assert offloaded[1:] == [next, next, next]


# ============================================================================
# CELL VALIDITY TESTS
# ============================================================================

class TestCellValidity:
    """Type mismatches are recorded per cell and never fail the batch."""

    async def test_validity_flags_follow_column_types(self, session_factory, seeded):
        task_id, _ = await run_upload(session_factory, seeded, "mixed_validity.csv")

        assert (await load_task(session_factory, task_id)).status == "completed"
        values = await load_all(
            session_factory, ProposalFieldValue,
            ProposalFieldValue.proposal_version_id, ProposalFieldValue.position,
        )
        assert [v.is_valid for v in values] == [False, False, False, False, True, True, True, True]

    async def test_invalid_values_are_stored_verbatim(self, session_factory, seeded):
        await run_upload(session_factory, seeded, "with_changemakers.csv")

        budget_values = [
            v for v in await load_all(session_factory, ProposalFieldValue) if v.position == 3
        ]
        assert [(v.value, v.is_valid) for v in budget_values] == [
            ("5000", True),
            ("not a number", False),
            ("1e3", True),
            ("12.50", True),
            ("7", True),
        ]


# ============================================================================
# CHANGEMAKER TESTS
# ============================================================================

class TestChangemakerLinkage:
    """Proposals are linked to changemakers by tax id."""

    async def test_changemakers_are_created_and_reused(self, session_factory, seeded):
        task_id, _ = await run_upload(session_factory, seeded, "with_changemakers.csv")
        assert (await load_task(session_factory, task_id)).status == "completed"

        changemakers = await load_all(session_factory, Changemaker)
        assert [(c.tax_id, c.name) for c in changemakers] == [
            ("11-1111111", "Foo LLC."),
            ("22-2222222", "Bar Inc."),
        ]

        proposals = {p.id: p.external_id for p in await load_all(session_factory, Proposal)}
        changemaker_tax_ids = {c.id: c.tax_id for c in changemakers}
        links = sorted(
            (proposals[link.proposal_id], changemaker_tax_ids[link.changemaker_id])
            for link in await load_all(session_factory, ChangemakerProposal)
        )
        assert links == [
            ("1", "11-1111111"),
            ("2", "22-2222222"),
            ("3", "11-1111111"),
        ]

    async def test_existing_changemaker_is_linked(self, session_factory, seeded):
        async with session_factory() as db:
            db.add(Changemaker(tax_id="22-2222222", name="Already Known"))
            await db.commit()

        await run_upload(session_factory, seeded, "with_changemakers.csv")

        changemakers = await load_all(session_factory, Changemaker)
        assert [c.name for c in changemakers if c.tax_id == "22-2222222"] == ["Already Known"]
        assert await count_rows(session_factory, ChangemakerProposal) == 3

    async def test_no_tax_id_column_means_no_changemakers(self, session_factory, seeded):
        await run_upload(session_factory, seeded, "valid.csv")
        assert await count_rows(session_factory, Changemaker) == 0
        assert await count_rows(session_factory, ChangemakerProposal) == 0


# ============================================================================
# HOUSEKEEPING TESTS
# ============================================================================

class TestHousekeeping:
    """Cleanup steps run after the batch and never change the outcome."""

    async def test_temporary_file_is_removed(self, session_factory, seeded):
        created_paths = []
        storage = FakeStorage({"unprocessed/upload.csv": load_fixture("valid.csv")})
        original_download = storage.download_to_file

        async def recording_download(key, path):
            created_paths.append(path)
            return await original_download(key, path)

        storage.download_to_file = recording_download
        task_id = await make_bulk_upload(
            session_factory, seeded["user_id"], seeded["source_id"],
            source_key="unprocessed/upload.csv",
        )

        await process_bulk_upload_task(
            {"bulkUploadId": task_id}, session_factory=session_factory, storage=storage
        )

        assert len(created_paths) == 1
        assert not os.path.exists(created_paths[0])

    async def test_move_failure_keeps_outcome_and_source_key(self, session_factory, seeded):
        storage = FakeStorage(
            {"unprocessed/upload.csv": load_fixture("valid.csv")}, fail_move=True
        )
        task_id = await make_bulk_upload(
            session_factory, seeded["user_id"], seeded["source_id"],
            source_key="unprocessed/upload.csv",
        )

        await process_bulk_upload_task(
            {"bulkUploadId": task_id}, session_factory=session_factory, storage=storage
        )

        task = await load_task(session_factory, task_id)
        assert task.status == "completed"
        assert task.source_key == "unprocessed/upload.csv"
        assert task.file_size is not None

    async def test_file_size_failure_keeps_outcome(self, session_factory, seeded):
        with patch(
            "pdc.tasks.process_bulk_upload.aiofiles.os.stat",
            side_effect=OSError("stat failed"),
        ):
            task_id, _ = await run_upload(session_factory, seeded, "valid.csv")

        task = await load_task(session_factory, task_id)
        assert task.status == "completed"
        assert task.file_size is None
        assert task.source_key == f"bulkUploads/{task_id}"


# ============================================================================
# STATUS TRANSITION TESTS
# ============================================================================

class TestFinalStatus:
    """The final status only replaces ``in_progress``."""

    async def test_task_failed_by_reclaim_is_not_completed(self, session_factory, seeded):
        task_id = await make_bulk_upload(
            session_factory, seeded["user_id"], seeded["source_id"],
            source_key="unprocessed/upload.csv",
        )

        class ReclaimingStorage(FakeStorage):
            async def move(self, source_key, destination_key):
                async with session_factory() as db:
                    await BulkUploadService.fail_stale_in_progress(
                        db, datetime.now(timezone.utc) + timedelta(days=1)
                    )
                    await db.commit()
                await super().move(source_key, destination_key)

        storage = ReclaimingStorage({"unprocessed/upload.csv": load_fixture("valid.csv")})
        await process_bulk_upload_task(
            {"bulkUploadId": task_id}, session_factory=session_factory, storage=storage
        )

        task = await load_task(session_factory, task_id)
        assert task.status == "failed"
        assert task.source_key == f"bulkUploads/{task_id}"

    async def test_finish_only_moves_in_progress_tasks(self, session_factory, seeded):
        task_id = await make_bulk_upload(
            session_factory, seeded["user_id"], seeded["source_id"], status="failed"
        )

        async with session_factory() as db:
            finished = await BulkUploadService.finish(db, task_id, BulkUploadStatus.COMPLETED)
            await db.commit()

        assert finished is False
        assert (await load_task(session_factory, task_id)).status == "failed"


# ============================================================================
# UNEXPECTED ERROR TESTS
# ============================================================================

class TestUnexpectedErrors:
    """Errors raised mid-batch fail the task but keep committed rows."""

    async def test_error_after_some_rows_fails_task(self, session_factory, seeded):
        from pdc.services.proposal_service import ProposalService

        original = ProposalService.create_proposal
        calls = {"count": 0}

        async def flaky_create_proposal(db, **kwargs):
            calls["count"] += 1
            if calls["count"] == 2:
                raise RuntimeError("database went away")
            return await original(db, **kwargs)

        with patch.object(ProposalService, "create_proposal", side_effect=flaky_create_proposal):
            task_id, storage = await run_upload(session_factory, seeded, "valid.csv")

        task = await load_task(session_factory, task_id)
        assert task.status == "failed"
        assert task.source_key == f"bulkUploads/{task_id}"

        proposals = await load_all(session_factory, Proposal)
        assert [p.external_id for p in proposals] == ["1"]
        assert await count_rows(session_factory, ProposalFieldValue) == 2
