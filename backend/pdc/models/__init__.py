"""
PDC API Models

Pydantic models for request validation, response serialization, and the
worker's job payloads.
"""

from .enums import BaseFieldDataType, BaseFieldScope, BulkUploadStatus, JobStatus

from .base_field import BaseFieldResponse, BaseFieldWrite

from .bulk_upload import (
    BulkUploadBundle,
    BulkUploadCreate,
    BulkUploadResponse,
    ProcessBulkUploadJobPayload,
)

__all__ = [
    "BaseFieldDataType",
    "BaseFieldScope",
    "BulkUploadStatus",
    "JobStatus",
    "BaseFieldResponse",
    "BaseFieldWrite",
    "BulkUploadBundle",
    "BulkUploadCreate",
    "BulkUploadResponse",
    "ProcessBulkUploadJobPayload",
]
