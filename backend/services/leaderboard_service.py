"""
Leaderboard Service - read-only ranking and program totals

Derived from the points ledger and pickup requests; never authoritative
and never writes.
"""
import logging
from typing import Optional

from models.domain.points import ProgramStats

logger = logging.getLogger(__name__)

MAX_LEADERBOARD_SIZE = 100


class LeaderboardService:
    """Ranking and dashboard totals"""

    def __init__(self, stats_repo, ledger):
        self.stats_repo = stats_repo
        self.ledger = ledger

    async def leaderboard(self, limit: int = 10) -> list:
        """Top users by points, clamped to 1..MAX_LEADERBOARD_SIZE."""
        limit = max(1, min(int(limit), MAX_LEADERBOARD_SIZE))
        return await self.stats_repo.top_users(limit=limit)

    async def user_standing(self, user_id: str) -> dict:
        """
        A user's total and rank.

        Returns:
            {'user_id', 'total_points', 'rank'} - rank is None before the first credit
        """
        points = await self.ledger.get(user_id)
        rank: Optional[int] = await self.stats_repo.rank_of(user_id)
        return {
            "user_id": user_id,
            "total_points": points.total_points,
            "rank": rank,
        }

    async def stats(self) -> ProgramStats:
        return await self.stats_repo.program_stats()
