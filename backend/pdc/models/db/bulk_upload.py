"""BulkUploadTask ORM model.

One row per CSV ingestion request.  Created ``pending`` by the API; every
later mutation (status, file size, source key relocation) belongs to the
bulk upload worker task.
"""

from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from pdc.models.db.base import Base, TimestampMixin

__all__ = ["BulkUploadTask"]


class BulkUploadTask(TimestampMixin, Base):
    __tablename__ = "bulk_upload_tasks"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'failed')",
            name="bulk_upload_tasks_status_check",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    source_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sources.id"), nullable=False
    )
    source_key: Mapped[str] = mapped_column(Text, nullable=False)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="pending")
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
