"""Changemaker ORM model and its join table to proposals."""

from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pdc.models.db.base import Base, CreatedAtMixin

__all__ = ["Changemaker", "ChangemakerProposal"]


class Changemaker(CreatedAtMixin, Base):
    __tablename__ = "changemakers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tax_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)


class ChangemakerProposal(CreatedAtMixin, Base):
    __tablename__ = "changemakers_proposals"
    __table_args__ = (
        UniqueConstraint(
            "changemaker_id",
            "proposal_id",
            name="changemakers_proposals_changemaker_proposal_key",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    changemaker_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("changemakers.id", ondelete="CASCADE"), nullable=False
    )
    proposal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False
    )
