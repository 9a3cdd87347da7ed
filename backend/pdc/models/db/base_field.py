"""BaseField ORM model: the registry of canonical data columns."""

from sqlalchemy import CheckConstraint, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from pdc.models.db.base import Base, CreatedAtMixin

__all__ = ["BaseField"]


class BaseField(CreatedAtMixin, Base):
    __tablename__ = "base_fields"
    __table_args__ = (
        CheckConstraint(
            "data_type IN ('string', 'number', 'phone_number', 'email', 'url', 'boolean')",
            name="base_fields_data_type_check",
        ),
        CheckConstraint(
            "scope IN ('proposal', 'organization')",
            name="base_fields_scope_check",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    short_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    data_type: Mapped[str] = mapped_column(Text, nullable=False)
    scope: Mapped[str] = mapped_column(Text, nullable=False, server_default="proposal")
