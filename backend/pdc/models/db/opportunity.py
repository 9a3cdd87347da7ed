"""Opportunity, ApplicationForm, and ApplicationFormField ORM models."""

from typing import Optional

from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pdc.models.db.base import Base, CreatedAtMixin

__all__ = ["ApplicationForm", "ApplicationFormField", "Opportunity"]


class Opportunity(CreatedAtMixin, Base):
    __tablename__ = "opportunities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)


class ApplicationForm(CreatedAtMixin, Base):
    __tablename__ = "application_forms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    opportunity_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("opportunities.id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    external_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ApplicationFormField(CreatedAtMixin, Base):
    __tablename__ = "application_form_fields"
    __table_args__ = (
        UniqueConstraint(
            "application_form_id",
            "position",
            name="application_form_fields_form_position_key",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    application_form_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("application_forms.id", ondelete="CASCADE"), nullable=False
    )
    base_field_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("base_fields.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)
