"""Shared dependencies for all PDC API routers.

Centralises the authentication dependencies, pagination parsing, and small
utility helpers so that every router module can ``from pdc.deps import ...``
without pulling in ``main``.
"""

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from pdc.auth import get_token_claims, is_administrator
from pdc.database import get_db
from pdc.models.db.user import User
from pdc.services.user_service import UserService

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 1000


# ---------------------------------------------------------------------------
# Small utility helpers
# ---------------------------------------------------------------------------


def _safe_error(operation: str, e: Exception) -> str:
    """Log the full exception but return a safe message without internal details.

    This prevents leaking stack traces, file paths, or database internals
    to API consumers while preserving full diagnostics in server logs.
    """
    logger.exception("Error during %s", operation)
    return f"{operation} failed. Please try again or contact support."


@dataclass(frozen=True)
class Pagination:
    page: int
    count: int

    @property
    def limit(self) -> int:
        return self.count

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.count


def get_pagination(
    page: int = Query(1, alias="_page", ge=1),
    count: int = Query(DEFAULT_PAGE_SIZE, alias="_count", ge=1, le=MAX_PAGE_SIZE),
) -> Pagination:
    return Pagination(page=page, count=count)


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------


async def get_current_user(
    claims: dict[str, Any] = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the bearer token to a user row, registering it on first sight."""
    return await UserService.get_or_create_by_keycloak_id(db, claims["sub"])


async def require_administrator(
    claims: dict[str, Any] = Depends(get_token_claims),
) -> dict[str, Any]:
    if not is_administrator(claims):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Administrator access is required",
        )
    return claims
