"""JWT handling for the session cookie issued by the identity provider."""

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from jose import JWTError, jwt
from pydantic import BaseModel

from linkhub.core.config import get_settings

settings = get_settings()

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days


class TokenData(BaseModel):
    """Claims carried by an access token."""

    profile_id: UUID
    email: str
    exp: datetime


def create_access_token(
    profile_id: UUID,
    email: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed access token for a profile.

    Args:
        profile_id: The profile's UUID (``sub`` claim)
        email: The account email
        expires_delta: Optional custom lifetime (default 7 days)
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    claims: dict[str, Any] = {
        "sub": str(profile_id),
        "email": email,
        "exp": expire,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> TokenData | None:
    """Decode and validate an access token.

    Returns None for malformed, forged or expired tokens.
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None

    profile_id = payload.get("sub")
    email = payload.get("email")
    if profile_id is None or email is None:
        return None

    try:
        return TokenData(
            profile_id=UUID(profile_id),
            email=email,
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, ValueError):
        return None
