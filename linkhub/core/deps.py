"""Dependency injection utilities for FastAPI routes."""

from typing import Annotated

from fastapi import Cookie, Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linkhub.core.config import get_settings
from linkhub.core.database import get_async_session
from linkhub.core.security import decode_access_token
from linkhub.models.profile import Profile

settings = get_settings()

# Cookie name for auth token
AUTH_COOKIE_NAME = "linkhub_token"


async def get_current_profile(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    linkhub_token: Annotated[str | None, Cookie()] = None,
) -> Profile:
    """Get the profile of the authenticated account.

    Raises HTTPException 401 if the cookie is missing, invalid, or points at
    a profile that no longer exists.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if linkhub_token is None:
        raise credentials_exception

    token_data = decode_access_token(linkhub_token)
    if token_data is None:
        raise credentials_exception

    result = await session.execute(select(Profile).where(Profile.id == token_data.profile_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise credentials_exception

    return profile


async def verify_cron_secret(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Guard maintenance endpoints with ``Authorization: Bearer <CRON_SECRET>``.

    Open when no secret is configured (local development).
    """
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


# Type aliases for dependency injection
CurrentUser = Annotated[Profile, Depends(get_current_profile)]
CronAuthorized = Depends(verify_cron_secret)
