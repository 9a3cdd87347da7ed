"""Base field registry access.

The bulk upload pipeline reads the registry through :class:`FieldRegistry`,
an immutable snapshot loaded fresh for every ingestion run so that fields
registered between runs are honoured without a restart.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pdc.exceptions import ConflictError, NotFoundError
from pdc.models.base_field import BaseFieldWrite
from pdc.models.db.base_field import BaseField
from pdc.models.enums import BaseFieldDataType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldDescriptor:
    """Read-only view of one base field."""

    id: int
    short_code: str
    label: str
    data_type: BaseFieldDataType


class FieldRegistry:
    """Snapshot of registered base fields keyed by short code."""

    def __init__(self, fields: Iterable[FieldDescriptor]) -> None:
        self._fields: dict[str, FieldDescriptor] = {}
        for descriptor in fields:
            self._fields[descriptor.short_code] = descriptor

    @classmethod
    def from_base_fields(cls, base_fields: Iterable[BaseField]) -> "FieldRegistry":
        return cls(
            FieldDescriptor(
                id=base_field.id,
                short_code=base_field.short_code,
                label=base_field.label,
                data_type=BaseFieldDataType(base_field.data_type),
            )
            for base_field in base_fields
        )

    def get(self, short_code: str) -> Optional[FieldDescriptor]:
        return self._fields.get(short_code)

    def __contains__(self, short_code: object) -> bool:
        return short_code in self._fields

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)


class BaseFieldService:
    """Service layer for base field operations."""

    @staticmethod
    async def load_all(db: AsyncSession) -> list[BaseField]:
        result = await db.execute(select(BaseField).order_by(BaseField.id))
        return list(result.scalars().all())

    @staticmethod
    async def load_registry(db: AsyncSession) -> FieldRegistry:
        """Load a fresh registry snapshot for one ingestion run."""
        return FieldRegistry.from_base_fields(await BaseFieldService.load_all(db))

    @staticmethod
    async def load(db: AsyncSession, base_field_id: int) -> BaseField:
        base_field = await db.get(BaseField, base_field_id)
        if base_field is None:
            raise NotFoundError("BaseField", base_field_id)
        return base_field

    @staticmethod
    async def create(db: AsyncSession, data: BaseFieldWrite) -> BaseField:
        """Register a new base field.

        Raises:
            ConflictError: If the short code is already registered.
        """
        base_field = BaseField(
            label=data.label,
            description=data.description,
            short_code=data.short_code,
            data_type=data.data_type.value,
            scope=data.scope.value,
        )
        db.add(base_field)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"A base field with short code {data.short_code} already exists"
            ) from exc
        await db.refresh(base_field)
        logger.info("Created base field %s (%s)", base_field.id, base_field.short_code)
        return base_field

    @staticmethod
    async def update(
        db: AsyncSession, base_field_id: int, data: BaseFieldWrite
    ) -> BaseField:
        """Replace every writable attribute of an existing base field."""
        base_field = await BaseFieldService.load(db, base_field_id)
        base_field.label = data.label
        base_field.description = data.description
        base_field.short_code = data.short_code
        base_field.data_type = data.data_type.value
        base_field.scope = data.scope.value
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"A base field with short code {data.short_code} already exists"
            ) from exc
        await db.refresh(base_field)
        return base_field
