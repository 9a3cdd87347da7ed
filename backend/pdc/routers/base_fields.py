"""Base fields router.

Base fields are the registry of column short codes a bulk upload CSV may
use.  Anyone authenticated may read the registry; only administrators may
change it.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from pdc.auth import get_token_claims
from pdc.database import get_db
from pdc.deps import _safe_error, require_administrator
from pdc.exceptions import ConflictError, NotFoundError
from pdc.models.base_field import BaseFieldResponse, BaseFieldWrite
from pdc.services.base_field_service import BaseFieldService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["baseFields"])


@router.get(
    "/baseFields",
    response_model=List[BaseFieldResponse],
    response_model_by_alias=True,
)
async def list_base_fields(
    db: AsyncSession = Depends(get_db),
    claims: dict = Depends(get_token_claims),
):
    """List every registered base field, ordered by id."""
    try:
        base_fields = await BaseFieldService.load_all(db)
        return [BaseFieldResponse.model_validate(b) for b in base_fields]
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing base fields", e),
        ) from e


@router.post(
    "/baseFields",
    response_model=BaseFieldResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_base_field(
    body: BaseFieldWrite,
    db: AsyncSession = Depends(get_db),
    claims: dict = Depends(require_administrator),
):
    """Register a new base field.

    Raises:
        HTTPException 409: The short code is already registered.
    """
    try:
        base_field = await BaseFieldService.create(db, body)
        return BaseFieldResponse.model_validate(base_field)
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("creating base field", e),
        ) from e


@router.put(
    "/baseFields/{base_field_id}",
    response_model=BaseFieldResponse,
    response_model_by_alias=True,
)
async def replace_base_field(
    base_field_id: int,
    body: BaseFieldWrite,
    db: AsyncSession = Depends(get_db),
    claims: dict = Depends(require_administrator),
):
    """Replace an existing base field.

    Raises:
        HTTPException 404: No base field has this id.
        HTTPException 409: The new short code belongs to another base field.
    """
    try:
        base_field = await BaseFieldService.update(db, base_field_id, body)
        return BaseFieldResponse.model_validate(base_field)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("updating base field", e),
        ) from e
