"""Proposal, ProposalVersion, and ProposalFieldValue ORM models.

Bulk uploads create one proposal per CSV data row, one version per
proposal, and one field value per cell.
"""

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pdc.models.db.base import Base, CreatedAtMixin

__all__ = ["Proposal", "ProposalFieldValue", "ProposalVersion"]


class Proposal(CreatedAtMixin, Base):
    __tablename__ = "proposals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    opportunity_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("opportunities.id"), nullable=False
    )
    external_id: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )


class ProposalVersion(CreatedAtMixin, Base):
    __tablename__ = "proposal_versions"
    __table_args__ = (
        UniqueConstraint(
            "proposal_id", "version", name="proposal_versions_proposal_version_key"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    proposal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False
    )
    application_form_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("application_forms.id"), nullable=False
    )
    source_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("sources.id"), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    created_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )


class ProposalFieldValue(CreatedAtMixin, Base):
    __tablename__ = "proposal_field_values"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    proposal_version_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("proposal_versions.id", ondelete="CASCADE"), nullable=False
    )
    application_form_field_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("application_form_fields.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False)
