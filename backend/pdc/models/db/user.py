"""User and Source ORM models.

Users are created on first sight of a bearer token; ``keycloak_user_id`` is
the token's ``sub`` claim.  Sources identify where proposal data came from.
"""

from typing import Optional

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from pdc.models.db.base import Base, CreatedAtMixin

__all__ = ["Source", "User"]


class User(CreatedAtMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    keycloak_user_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)


class Source(CreatedAtMixin, Base):
    __tablename__ = "sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    funder_short_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
