"""JWT validation and user authentication dependencies.

Tokens are Supabase access tokens (ES256) verified against the project's
JWKS. The matching public.users row is created on first use.
"""

import logging
import time
import uuid as uuid_pkg
from typing import Annotated, Any

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from jose.backends import ECKey
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import get_db
from app.models.user import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Cache for JWKS with TTL to handle key rotation
_jwks_cache: dict[str, Any] = {}
_jwks_cache_timestamp: float = 0.0
_JWKS_CACHE_TTL_SECONDS: float = 3600.0


async def _fetch_jwks() -> dict[str, Any]:
    """Fetch JWKS from Supabase and update the cache."""
    global _jwks_cache_timestamp
    async with httpx.AsyncClient() as client:
        response = await client.get(settings.supabase_jwks_url)
        response.raise_for_status()
        jwks = response.json()
    _jwks_cache.clear()
    _jwks_cache.update(jwks)
    _jwks_cache_timestamp = time.monotonic()
    return jwks


async def get_jwks(force_refresh: bool = False) -> dict[str, Any]:
    """Fetch and cache JWKS from Supabase with a 1-hour TTL."""
    cache_age = time.monotonic() - _jwks_cache_timestamp
    if _jwks_cache and not force_refresh and cache_age < _JWKS_CACHE_TTL_SECONDS:
        return _jwks_cache
    return await _fetch_jwks()


def get_signing_key(jwks: dict[str, Any], token: str) -> ECKey:
    """Get the signing key from JWKS that matches the token's kid."""
    kid = jwt.get_unverified_header(token).get("kid")
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return ECKey(key, algorithm="ES256")
    raise ValueError("Unable to find matching key in JWKS")


async def _decode_token(token: str, force_refresh: bool = False) -> dict[str, Any]:
    jwks = await get_jwks(force_refresh=force_refresh)
    payload = jwt.decode(
        token,
        get_signing_key(jwks, token),
        algorithms=["ES256"],
        audience="authenticated",
    )
    if not payload.get("sub"):
        raise ValueError("Token has no subject")
    return payload


def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Validate Supabase JWT and return current user.

    Creates user record on first API call if not exists.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    token = credentials.credentials
    try:
        payload = await _decode_token(token)
    except (JWTError, ValueError) as first_error:
        # Signing keys may have rotated - refresh JWKS and retry once
        logger.info("JWT validation failed with cached JWKS, forcing refresh")
        try:
            payload = await _decode_token(token, force_refresh=True)
        except (JWTError, ValueError, httpx.HTTPError):
            raise _credentials_error() from first_error
    except httpx.HTTPError as e:
        logger.error(f"Failed to fetch JWKS: {e}")
        raise _credentials_error() from None

    try:
        user_id = uuid_pkg.UUID(payload["sub"])
    except ValueError:
        raise _credentials_error() from None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        user_metadata = payload.get("user_metadata", {})
        user = User(
            id=user_id,
            email=payload.get("email"),
            display_name=user_metadata.get("full_name") or user_metadata.get("name"),
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        logger.info(f"Created user record for {user_id} on first request")

    return user


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
