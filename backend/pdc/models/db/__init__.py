"""SQLAlchemy 2.0 ORM models for the Philanthropy Data Commons service.

Import all models here so Alembic's ``env.py`` can discover them via::

    from pdc.models.db import Base  # noqa: F401

Every model must be imported at module level to register with the
``DeclarativeBase`` metadata.
"""

from pdc.models.db.base import Base, CreatedAtMixin, TimestampMixin  # noqa: F401

from pdc.models.db.user import Source, User  # noqa: F401
from pdc.models.db.base_field import BaseField  # noqa: F401
from pdc.models.db.bulk_upload import BulkUploadTask  # noqa: F401
from pdc.models.db.opportunity import (  # noqa: F401
    ApplicationForm,
    ApplicationFormField,
    Opportunity,
)
from pdc.models.db.proposal import (  # noqa: F401
    Proposal,
    ProposalFieldValue,
    ProposalVersion,
)
from pdc.models.db.changemaker import Changemaker, ChangemakerProposal  # noqa: F401
from pdc.models.db.job import Job  # noqa: F401

__all__ = [
    "Base",
    "CreatedAtMixin",
    "TimestampMixin",
    "User",
    "Source",
    "BaseField",
    "BulkUploadTask",
    "Opportunity",
    "ApplicationForm",
    "ApplicationFormField",
    "Proposal",
    "ProposalVersion",
    "ProposalFieldValue",
    "Changemaker",
    "ChangemakerProposal",
    "Job",
]
