"""User and source lookups used by the API layer."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pdc.exceptions import NotFoundError
from pdc.models.db.user import Source, User

logger = logging.getLogger(__name__)


class UserService:
    """Service layer for users and sources."""

    @staticmethod
    async def get_or_create_by_keycloak_id(
        db: AsyncSession, keycloak_user_id: str
    ) -> User:
        result = await db.execute(
            select(User).where(User.keycloak_user_id == keycloak_user_id)
        )
        user = result.scalar_one_or_none()
        if user is not None:
            return user
        user = User(keycloak_user_id=keycloak_user_id)
        db.add(user)
        await db.flush()
        logger.info("Registered user %s", user.id, extra={"keycloak_user_id": keycloak_user_id})
        return user

    @staticmethod
    async def assert_source_exists(db: AsyncSession, source_id: int) -> None:
        if await db.get(Source, source_id) is None:
            raise NotFoundError("Source", source_id)
