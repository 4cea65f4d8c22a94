"""
Shared API dependencies and pipeline error mapping

Services are built per request from objects placed on app.state at
startup (see main.py). Tests replace these via app.dependency_overrides.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from repositories.pickup_repository import PickupRequestRepository
from repositories.points_ledger_repository import PointsLedgerRepository
from repositories.stats_repository import StatsRepository
from repositories.user_profile_repository import UserProfileRepository
from services.errors import (
    PickupNotFoundError,
    PipelineError,
    ValidationError,
    VerificationConflictError,
)
from services.leaderboard_service import LeaderboardService
from services.settlement_service import SettlementService

logger = logging.getLogger(__name__)


def get_pickup_repo(request: Request) -> PickupRequestRepository:
    return PickupRequestRepository(request.app.state.db_pool)


def get_ledger(request: Request) -> PointsLedgerRepository:
    return PointsLedgerRepository(request.app.state.db_pool)


def get_profile_repo(request: Request) -> UserProfileRepository:
    return UserProfileRepository(request.app.state.db_pool)


def get_settlement_service(request: Request) -> SettlementService:
    state = request.app.state
    return SettlementService(
        pickups=PickupRequestRepository(state.db_pool),
        ledger=PointsLedgerRepository(state.db_pool),
        classifier=state.classifier,
        image_storage=state.image_storage,
        job_queue=getattr(state, 'job_queue', None),
    )


def get_leaderboard_service(request: Request) -> LeaderboardService:
    pool = request.app.state.db_pool
    return LeaderboardService(StatsRepository(pool), PointsLedgerRepository(pool))


def status_for_error(error: PipelineError) -> int:
    """HTTP status for a pipeline error."""
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, PickupNotFoundError):
        return 404
    if isinstance(error, VerificationConflictError):
        return 409
    # Infrastructure failures are transient from the caller's point of view
    return 503


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    status = status_for_error(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content=exc.to_dict())
