"""
JWT session management
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt
from config import get_settings


def create_access_token(user_id: str, name: Optional[str] = None, expires_minutes: Optional[int] = None) -> str:
    """
    Create JWT access token for a user

    Args:
        user_id: opaque stable user id (becomes the `sub` claim)
        name: display name (presentation only)

    Returns:
        JWT token string
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes or settings.jwt_expire_minutes)

    payload = {
        "sub": str(user_id),
        "name": name,
        "exp": expire,
        "iat": now
    }

    return jwt.encode(
        payload,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm
    )


def decode_access_token(token: str) -> dict:
    """
    Decode and validate JWT token

    Returns:
        Decoded payload dict

    Raises:
        jose.JWTError if token invalid/expired
    """
    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm]
    )
