"""Re-export Base and provide common mixins for ORM models."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from pdc.database import Base

__all__ = ["Base", "CreatedAtMixin", "TimestampMixin", "JSONVariant"]

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite).
JSONVariant = JSON().with_variant(JSONB(), "postgresql")


class CreatedAtMixin:
    """Mixin that adds a server-defaulted ``created_at`` column."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class TimestampMixin(CreatedAtMixin):
    """Mixin that adds ``created_at`` and ``updated_at`` columns.

    Both default to ``NOW()`` on the server side.  ``updated_at`` is also
    refreshed on every UPDATE via ``onupdate``.
    """

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
