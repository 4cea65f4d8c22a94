"""
Leaderboard & Stats API Endpoints
=================================

Public, read-only views derived from the points ledger.

Endpoints:
- GET /api/leaderboard - Top users by points
- GET /api/stats - Program totals for the dashboard
"""

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_leaderboard_service
from models.api.pickup import LeaderboardResponse, StatsResponse
from services.leaderboard_service import MAX_LEADERBOARD_SIZE

router = APIRouter()


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=MAX_LEADERBOARD_SIZE),
    leaderboard=Depends(get_leaderboard_service),
):
    entries = await leaderboard.leaderboard(limit=limit)
    return {"entries": [e.to_dict() for e in entries]}


@router.get("/stats", response_model=StatsResponse)
async def get_stats(leaderboard=Depends(get_leaderboard_service)):
    """Total weight collected, pickups, users and points awarded."""
    stats = await leaderboard.stats()
    return stats.to_dict()
