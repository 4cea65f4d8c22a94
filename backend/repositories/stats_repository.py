"""
Stats Repository - read-only aggregates over the ledger and pickups

Storage: PostgreSQL (user_points, pickup_requests, user_profiles)

Derived data only; nothing here writes.
"""
import logging
from typing import List, Optional

import asyncpg

from models.domain.points import LeaderboardEntry, ProgramStats
from repositories.base import DB_ERRORS
from services.errors import StoreError

logger = logging.getLogger(__name__)


class StatsRepository:
    """Leaderboard and dashboard queries"""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def top_users(self, limit: int = 10) -> List[LeaderboardEntry]:
        """
        Users ordered by total points (ties share a rank).

        Display names come from user_profiles and are presentation only.
        """
        try:
            async with self.db_pool.acquire() as conn:
                rows = await conn.fetch("""
                    SELECT up.user_id, up.total_points, pr.display_name,
                           RANK() OVER (ORDER BY up.total_points DESC) AS rank
                    FROM user_points up
                    LEFT JOIN user_profiles pr ON pr.user_id = up.user_id
                    ORDER BY up.total_points DESC, up.updated_at ASC
                    LIMIT $1
                """, limit)
        except DB_ERRORS as e:
            raise StoreError(f"Failed to read leaderboard: {e}") from e

        return [
            LeaderboardEntry(
                rank=int(row['rank']),
                user_id=row['user_id'],
                total_points=int(row['total_points']),
                display_name=row['display_name'],
            )
            for row in rows
        ]

    async def rank_of(self, user_id: str) -> Optional[int]:
        """Rank of one user, or None if they have no points row."""
        try:
            async with self.db_pool.acquire() as conn:
                rank = await conn.fetchval("""
                    SELECT 1 + (
                        SELECT COUNT(*) FROM user_points o
                        WHERE o.total_points > u.total_points
                    )
                    FROM user_points u
                    WHERE u.user_id = $1
                """, user_id)
        except DB_ERRORS as e:
            raise StoreError(f"Failed to read rank for {user_id}: {e}") from e

        return int(rank) if rank is not None else None

    async def program_stats(self) -> ProgramStats:
        """Program-wide totals for the dashboard."""
        try:
            async with self.db_pool.acquire() as conn:
                row = await conn.fetchrow("""
                    SELECT
                        COALESCE(SUM(weight_kg), 0) AS total_weight_kg,
                        COUNT(*) AS total_pickups,
                        COUNT(*) FILTER (WHERE verification_status = 'verified') AS verified_pickups
                    FROM pickup_requests
                """)
                users = await conn.fetchrow("""
                    SELECT COUNT(*) AS total_users,
                           COALESCE(SUM(total_points), 0) AS total_points
                    FROM user_points
                """)
        except DB_ERRORS as e:
            raise StoreError(f"Failed to read program stats: {e}") from e

        return ProgramStats(
            total_weight_kg=float(row['total_weight_kg']),
            total_users=int(users['total_users']),
            total_pickups=int(row['total_pickups']),
            verified_pickups=int(row['verified_pickups']),
            total_points_awarded=int(users['total_points']),
        )
