"""String enums shared by the ORM models, pydantic models, and services."""

from enum import Enum


class BulkUploadStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class BaseFieldDataType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    PHONE_NUMBER = "phone_number"
    EMAIL = "email"
    URL = "url"
    BOOLEAN = "boolean"


class BaseFieldScope(str, Enum):
    PROPOSAL = "proposal"
    ORGANIZATION = "organization"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
