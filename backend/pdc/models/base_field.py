"""Pydantic request/response models for the base field registry API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import BaseFieldDataType, BaseFieldScope


class BaseFieldWrite(BaseModel):
    """Body accepted when creating or replacing a base field."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    label: str = Field(..., min_length=1)
    description: str = ""
    short_code: str = Field(..., min_length=1, pattern=r"^[a-z][a-z0-9_]*$")
    data_type: BaseFieldDataType
    scope: BaseFieldScope = BaseFieldScope.PROPOSAL


class BaseFieldResponse(BaseModel):
    """Full representation of a registered base field."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: int
    label: str
    description: str
    short_code: str
    data_type: BaseFieldDataType
    scope: BaseFieldScope
    created_at: Optional[datetime] = None
