"""Writers for the records a bulk upload creates once per run.

Each bulk upload gets its own opportunity, one application form for that
opportunity, and one application form field per CSV column.
"""

import logging
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from pdc.models.db.opportunity import ApplicationForm, ApplicationFormField, Opportunity
from pdc.services.base_field_service import FieldRegistry

logger = logging.getLogger(__name__)


class OpportunityService:
    """Service layer for opportunities and their application forms."""

    @staticmethod
    async def create_opportunity(db: AsyncSession, title: str) -> Opportunity:
        opportunity = Opportunity(title=title)
        db.add(opportunity)
        await db.flush()
        return opportunity

    @staticmethod
    async def create_application_form(
        db: AsyncSession, opportunity_id: int
    ) -> ApplicationForm:
        application_form = ApplicationForm(opportunity_id=opportunity_id, version=1)
        db.add(application_form)
        await db.flush()
        return application_form

    @staticmethod
    async def create_application_form_fields(
        db: AsyncSession,
        application_form_id: int,
        short_codes: Sequence[str],
        registry: FieldRegistry,
    ) -> list[ApplicationFormField]:
        """Create one form field per short code, positioned by column index.

        Raises:
            KeyError: If a short code is missing from *registry*.
        """
        fields: list[ApplicationFormField] = []
        for position, short_code in enumerate(short_codes):
            descriptor = registry.get(short_code)
            if descriptor is None:
                raise KeyError(f'No base field could be found with shortCode "{short_code}"')
            fields.append(
                ApplicationFormField(
                    application_form_id=application_form_id,
                    base_field_id=descriptor.id,
                    position=position,
                    label=descriptor.label,
                )
            )
        db.add_all(fields)
        await db.flush()
        logger.debug(
            "Created %d application form fields", len(fields),
            extra={"application_form_id": application_form_id},
        )
        return fields
