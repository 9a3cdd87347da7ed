"""Bearer token authentication for the PDC API.

Tokens are issued by the identity provider (Keycloak) and verified here with
python-jose.  The ``sub`` claim is the caller's Keycloak user id; realm roles
are read from ``realm_access.roles``.

``create_access_token`` mints tokens with the same shape, for local
development and tests.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from dotenv import load_dotenv
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

load_dotenv()

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# JWT configuration
# ---------------------------------------------------------------------------
JWT_SECRET = os.getenv("AUTH_JWT_SECRET", "pdc-dev-secret-change-in-production")
JWT_ALGORITHM = os.getenv("AUTH_JWT_ALGORITHM", "HS256")
JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE") or None
JWT_EXPIRY_HOURS = 24

ADMIN_ROLE = os.getenv("AUTH_ADMIN_ROLE", "pdc-admin")

# ---------------------------------------------------------------------------
# HTTPBearer scheme (shared with deps.py)
# ---------------------------------------------------------------------------
security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def create_access_token(
    keycloak_user_id: str,
    roles: Iterable[str] = (),
    expires_in: timedelta = timedelta(hours=JWT_EXPIRY_HOURS),
) -> str:
    """Create a signed JWT for *keycloak_user_id* carrying *roles*."""
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": keycloak_user_id,
        "realm_access": {"roles": list(roles)},
        "exp": now + expires_in,
        "iat": now,
    }
    if JWT_AUDIENCE:
        payload["aud"] = JWT_AUDIENCE
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify *token* and return its claims.

    Raises:
        HTTPException: 401 if the token is invalid, expired, or has no ``sub``.
    """
    try:
        claims = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            options={"verify_aud": JWT_AUDIENCE is not None},
        )
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc

    if not claims.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return claims


def get_roles(claims: dict[str, Any]) -> list[str]:
    realm_access = claims.get("realm_access") or {}
    if not isinstance(realm_access, dict):
        return []
    roles = realm_access.get("roles") or []
    return [role for role in roles if isinstance(role, str)]


def is_administrator(claims: dict[str, Any]) -> bool:
    return ADMIN_ROLE in get_roles(claims)


async def get_token_claims(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict[str, Any]:
    """FastAPI dependency -- extract and validate the Bearer JWT."""
    token: str | None = None

    if credentials is not None:
        token = credentials.credentials
    else:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_access_token(token)
