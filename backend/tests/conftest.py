"""Shared fixtures for the PDC test suite.

Database tests run against an in-memory SQLite database (aiosqlite) that
shares one connection through ``StaticPool``.  Sessions are always closed
before the code under test opens its own, so each unit of work sees a
committed state.
"""

import os
import sys
from typing import Dict, Iterable, List, Optional, Tuple

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from pdc.exceptions import StorageError
from pdc.models.db import Base, BaseField, Source, User
from pdc.services.bulk_upload_service import BulkUploadService

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")

DEFAULT_BASE_FIELDS: List[Tuple[str, str]] = [
    ("organization_name", "string"),
    ("organization_tax_id", "string"),
    ("proposal_submitter_email", "email"),
    ("proposal_budget", "number"),
    ("organization_website", "url"),
    ("organization_phone", "phone_number"),
    ("organization_is_nonprofit", "boolean"),
]


# ============================================================================
# FAKE OBJECT STORE
# ============================================================================

class FakeStorage:
    """In-memory stand-in for :class:`pdc.storage.BulkUploadStorage`."""

    def __init__(self, objects: Optional[Dict[str, bytes]] = None, fail_move: bool = False):
        self.objects: Dict[str, bytes] = dict(objects or {})
        self.fail_move = fail_move
        self.downloads: List[str] = []
        self.moves: List[Tuple[str, str]] = []

    async def download_to_file(self, key: str, path: str) -> int:
        self.downloads.append(key)
        if key not in self.objects:
            raise StorageError(f"Unable to load the object {key}")
        with open(path, "wb") as local_file:
            local_file.write(self.objects[key])
        return len(self.objects[key])

    async def move(self, source_key: str, destination_key: str) -> None:
        if self.fail_move:
            raise StorageError(f"Unable to copy {source_key} to {destination_key}")
        self.objects[destination_key] = self.objects.pop(source_key)
        self.moves.append((source_key, destination_key))


def load_fixture(name: str) -> bytes:
    with open(os.path.join(FIXTURES_DIR, name), "rb") as fixture_file:
        return fixture_file.read()


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


# ============================================================================
# TEST DATA FACTORIES
# ============================================================================

async def make_base_fields(
    session_factory: async_sessionmaker[AsyncSession],
    specs: Iterable[Tuple[str, str]] = DEFAULT_BASE_FIELDS,
) -> Dict[str, int]:
    """Register base fields and return their ids keyed by short code."""
    async with session_factory() as db:
        base_fields = [
            BaseField(
                label=short_code.replace("_", " ").title(),
                description="",
                short_code=short_code,
                data_type=data_type,
                scope="organization" if short_code.startswith("organization_") else "proposal",
            )
            for short_code, data_type in specs
        ]
        db.add_all(base_fields)
        await db.commit()
        return {b.short_code: b.id for b in base_fields}


async def make_user_and_source(
    session_factory: async_sessionmaker[AsyncSession],
    keycloak_user_id: str = "00000000-0000-0000-0000-000000000001",
) -> Tuple[int, int]:
    """Create a user and a source; return ``(user_id, source_id)``."""
    async with session_factory() as db:
        user = User(keycloak_user_id=keycloak_user_id)
        source = Source(label="Test Source")
        db.add_all([user, source])
        await db.commit()
        return user.id, source.id


async def make_bulk_upload(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: int,
    source_id: int,
    source_key: str = "unprocessed/test.csv",
    file_name: str = "test.csv",
    status: Optional[str] = None,
) -> int:
    """Create a bulk upload task and return its id."""
    async with session_factory() as db:
        task = await BulkUploadService.create(
            db,
            source_id=source_id,
            file_name=file_name,
            source_key=source_key,
            created_by=user_id,
        )
        if status is not None:
            await BulkUploadService.update(db, task.id, status=status)
        await db.commit()
        return task.id
