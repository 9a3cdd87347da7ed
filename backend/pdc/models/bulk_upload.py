"""Pydantic models for bulk upload requests, responses, and job payloads."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .enums import BulkUploadStatus


class ProcessBulkUploadJobPayload(BaseModel):
    """Payload of a ``processBulkUpload`` job: ``{"bulkUploadId": <id>}``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    bulk_upload_id: int = Field(..., gt=0, strict=True)


class BulkUploadCreate(BaseModel):
    """Body accepted by ``POST /api/v1/bulkUploads``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    source_id: int = Field(..., gt=0)
    file_name: str = Field(..., min_length=1)
    source_key: str = Field(..., min_length=1)

    @field_validator("file_name")
    @classmethod
    def file_name_must_be_csv(cls, v: str) -> str:
        if not v.lower().endswith(".csv"):
            raise ValueError("fileName must end in .csv")
        return v


class BulkUploadResponse(BaseModel):
    """Full representation of a bulk upload task."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: int
    source_id: int
    file_name: str
    source_key: str
    status: BulkUploadStatus
    file_size: Optional[int] = None
    created_by: int
    created_at: Optional[datetime] = None


class BulkUploadBundle(BaseModel):
    """Paginated list of bulk upload tasks."""

    entries: List[BulkUploadResponse]
    total: int
