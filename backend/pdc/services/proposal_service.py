"""Writers for the per-row records of a bulk upload."""

import logging
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from pdc.models.db.proposal import Proposal, ProposalFieldValue, ProposalVersion

logger = logging.getLogger(__name__)


class ProposalService:
    """Service layer for proposals, their versions, and field values."""

    @staticmethod
    async def create_proposal(
        db: AsyncSession,
        opportunity_id: int,
        external_id: str,
        created_by: Optional[int],
    ) -> Proposal:
        proposal = Proposal(
            opportunity_id=opportunity_id,
            external_id=external_id,
            created_by=created_by,
        )
        db.add(proposal)
        await db.flush()
        return proposal

    @staticmethod
    async def create_proposal_version(
        db: AsyncSession,
        proposal_id: int,
        application_form_id: int,
        source_id: Optional[int],
        created_by: Optional[int],
    ) -> ProposalVersion:
        proposal_version = ProposalVersion(
            proposal_id=proposal_id,
            application_form_id=application_form_id,
            source_id=source_id,
            version=1,
            created_by=created_by,
        )
        db.add(proposal_version)
        await db.flush()
        return proposal_version

    @staticmethod
    async def create_field_values(
        db: AsyncSession,
        proposal_version_id: int,
        cells: Sequence[tuple[int, int, str, bool]],
    ) -> list[ProposalFieldValue]:
        """Create the field values of one proposal version in a single flush.

        *cells* holds ``(application_form_field_id, position, value, is_valid)``
        tuples.
        """
        field_values = [
            ProposalFieldValue(
                proposal_version_id=proposal_version_id,
                application_form_field_id=application_form_field_id,
                position=position,
                value=value,
                is_valid=is_valid,
            )
            for application_form_field_id, position, value, is_valid in cells
        ]
        db.add_all(field_values)
        await db.flush()
        return field_values
