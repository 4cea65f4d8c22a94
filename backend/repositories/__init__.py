"""
Repository Pattern - Storage abstraction layer

Repositories hide storage details (PostgreSQL) from business logic.
Consumers work with domain models, not asyncpg records.

Storage:
- PickupRequestRepository: pickup_requests
- PointsLedgerRepository: user_points + points_credits
- StatsRepository: read-only aggregates for leaderboard/dashboard
- UserProfileRepository: user_profiles (display names)
"""
import asyncpg

from config.settings import get_settings

from .pickup_repository import PickupRequestRepository
from .points_ledger_repository import PointsLedgerRepository
from .stats_repository import StatsRepository
from .user_profile_repository import UserProfileRepository

# Shared database connection pool (initialized on first use)
db_pool = None


async def get_db_pool():
    """Get or create shared database connection pool"""
    global db_pool
    if db_pool is None:
        db_pool = await asyncpg.create_pool(
            dsn=get_settings().database_url,
            min_size=2,
            max_size=10
        )
    return db_pool


async def close_db_pool():
    """Close the shared pool (app shutdown)"""
    global db_pool
    if db_pool is not None:
        await db_pool.close()
        db_pool = None


__all__ = [
    'PickupRequestRepository',
    'PointsLedgerRepository',
    'StatsRepository',
    'UserProfileRepository',
    'db_pool',
    'get_db_pool',
    'close_db_pool',
]
