"""Changemaker lookup, creation, and proposal linkage."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pdc.models.db.changemaker import Changemaker, ChangemakerProposal

logger = logging.getLogger(__name__)


class ChangemakerService:
    """Service layer for changemaker operations."""

    @staticmethod
    async def load_by_tax_id(db: AsyncSession, tax_id: str) -> Optional[Changemaker]:
        result = await db.execute(
            select(Changemaker).where(Changemaker.tax_id == tax_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def create(db: AsyncSession, tax_id: str, name: str) -> Changemaker:
        changemaker = Changemaker(tax_id=tax_id, name=name)
        db.add(changemaker)
        await db.flush()
        logger.info("Created changemaker %s for tax id %s", changemaker.id, tax_id)
        return changemaker

    @staticmethod
    async def create_or_load(
        db: AsyncSession, tax_id: str, name: Optional[str]
    ) -> Optional[Changemaker]:
        """Find the changemaker with *tax_id*, creating it when a name is known.

        Returns ``None`` when no changemaker exists and *name* is empty.
        """
        changemaker = await ChangemakerService.load_by_tax_id(db, tax_id)
        if changemaker is not None:
            return changemaker
        if not name:
            return None
        return await ChangemakerService.create(db, tax_id, name)

    @staticmethod
    async def link_to_proposal(
        db: AsyncSession, changemaker_id: int, proposal_id: int
    ) -> ChangemakerProposal:
        link = ChangemakerProposal(changemaker_id=changemaker_id, proposal_id=proposal_id)
        db.add(link)
        await db.flush()
        return link
