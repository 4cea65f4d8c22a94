"""
Authentication dependencies

The identity provider issues a JWT whose `sub` claim is a stable opaque
user id. That id is the only key used for pickups and points; the display
name travels alongside for presentation.
"""

from fastapi import Request, HTTPException
from jose import JWTError
from typing import Optional

from .jwt_session import decode_access_token


class UserPublic:
    """Minimal user info from JWT token"""
    def __init__(self, user_id: str, name: Optional[str] = None):
        self.user_id = user_id
        self.name = name


def _token_from_request(request: Request) -> Optional[str]:
    """Bearer header first, then the access_token cookie."""
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get("access_token")


async def get_current_user_optional(request: Request) -> Optional[UserPublic]:
    """
    Get current user from JWT token (optional - doesn't raise if not authenticated)

    Returns:
        UserPublic if authenticated, None otherwise
    """
    token = _token_from_request(request)
    if not token:
        return None

    try:
        payload = decode_access_token(token)
    except JWTError:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None

    return UserPublic(user_id=str(user_id), name=payload.get("name"))


async def get_current_user(request: Request) -> UserPublic:
    """
    Get current user (required - raises 401 if not authenticated)

    Raises:
        HTTPException 401 if not authenticated
    """
    user = await get_current_user_optional(request)

    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")

    return user
