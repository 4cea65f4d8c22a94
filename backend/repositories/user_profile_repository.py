"""
User Profile Repository - display names for leaderboard presentation

Storage: PostgreSQL (user_profiles table)

Display names are mutable and never used as a key for pickups or points;
those are keyed by the opaque user id from the identity provider.
"""
import logging
from typing import Optional

import asyncpg

from repositories.base import DB_ERRORS
from services.errors import StoreError

logger = logging.getLogger(__name__)


class UserProfileRepository:
    """Repository for user display names"""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def upsert_display_name(self, user_id: str, display_name: Optional[str]) -> None:
        """Record the latest display name seen for a user (no-op when blank)."""
        if not display_name or not display_name.strip():
            return

        try:
            async with self.db_pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO user_profiles (user_id, display_name, updated_at)
                    VALUES ($1, $2, now())
                    ON CONFLICT (user_id)
                    DO UPDATE SET display_name = EXCLUDED.display_name, updated_at = now()
                """, user_id, display_name.strip())
        except DB_ERRORS as e:
            raise StoreError(f"Failed to update profile for {user_id}: {e}") from e
