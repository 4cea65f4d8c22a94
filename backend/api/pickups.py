"""
Pickup & Points API Endpoints
=============================

Submission, history and points balance for the signed-in user.

Endpoints:
- POST /api/pickups - Submit a pickup (multipart: address, category, weight_kg, image)
- GET /api/pickups - Current user's pickup history
- GET /api/pickups/{request_id} - One pickup request
- POST /api/pickups/{request_id}/verify - Retry verification of a pending request
- GET /api/points/me - Points total, rank and recent credits
- GET /api/points/preview - Points a submission would earn
"""

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
import logging
import redis

from api.dependencies import (
    get_leaderboard_service,
    get_ledger,
    get_pickup_repo,
    get_profile_repo,
    get_settlement_service,
)
from middleware.auth import UserPublic, get_current_user
from models.api.pickup import (
    PickupListResponse,
    PointsPreviewResponse,
    SettlementResponse,
    UserPointsResponse,
)
from models.domain.pickup import WasteCategory
from services.errors import ClassifierError, PipelineError
from services.points_policy import calculate_points, points_rate

logger = logging.getLogger(__name__)
router = APIRouter()

QUEUE_ERRORS = (redis.RedisError, OSError)

QUEUED_MESSAGE ="Verification is taking longer than usual. We'll keep trying and update your request."


async def _remember_display_name(profiles, user: UserPublic):
    if not user.name:
        return
    try:
        await profiles.upsert_display_name(user.user_id, user.name)
    except PipelineError as e:
        logger.warning(f"Could not store display name for {user.user_id}: {e.message}")


async def _load_owned(pickups, request_id: str, user: UserPublic):
    request = await pickups.get_by_id(request_id)
    # Other users' requests read as missing
    if request is None or request.submitter_id != user.user_id:
        raise HTTPException(status_code=404, detail="Pickup request not found")
    return request


async def _queue_for_retry(settlement, pickups, error: ClassifierError):
    """Hand a still-pending request to the worker; re-raise when that is not possible."""
    if settlement.job_queue is None or not error.request_id:
        raise error

    try:
        await settlement.enqueue_classification(error.request_id, reason="classifier_unavailable")
    except QUEUE_ERRORS as e:
        logger.error(f"Could not queue pickup {error.request_id} for retry: {e}")
        raise error

    request = await pickups.get_by_id(error.request_id)
    return JSONResponse(status_code=202, content={
        "request": request.to_dict(),
        "credited": False,
        "total_points": None,
        "message": QUEUED_MESSAGE,
        "queued": True,
    })


@router.post("/pickups", response_model=SettlementResponse)
async def submit_pickup(
    address: str = Form(...),
    category: str = Form(...),
    weight_kg: float = Form(...),
    image: UploadFile = File(...),
    user: UserPublic = Depends(get_current_user),
    settlement=Depends(get_settlement_service),
    pickups=Depends(get_pickup_repo),
    profiles=Depends(get_profile_repo),
):
    """
    Submit a pickup request.

    The photo is stored, the request is created pending, classified, and
    credited when verified. A rejection is a normal 200 response. When
    every classifier model fails the request stays pending and is queued
    for background retry (202).
    """
    data = await image.read()
    await _remember_display_name(profiles, user)

    try:
        outcome = await settlement.submit(
            submitter_id=user.user_id,
            address=address,
            category=category,
            weight_kg=weight_kg,
            image=data,
            content_type=image.content_type,
        )
    except ClassifierError as e:
        return await _queue_for_retry(settlement, pickups, e)

    return outcome.to_dict()


@router.get("/pickups", response_model=PickupListResponse)
async def list_pickups(
    limit: int = Query(100, ge=1, le=500),
    user: UserPublic = Depends(get_current_user),
    pickups=Depends(get_pickup_repo),
):
    """Current user's pickup history, newest first."""
    requests = await pickups.get_by_submitter(user.user_id, limit=limit)
    return {
        "pickups": [r.to_dict() for r in requests],
        "total": len(requests),
    }


@router.get("/pickups/{request_id}")
async def get_pickup(
    request_id: str,
    user: UserPublic = Depends(get_current_user),
    pickups=Depends(get_pickup_repo),
):
    request = await _load_owned(pickups, request_id, user)
    return request.to_dict()


@router.post("/pickups/{request_id}/verify", response_model=SettlementResponse)
async def verify_pickup(
    request_id: str,
    user: UserPublic = Depends(get_current_user),
    settlement=Depends(get_settlement_service),
    pickups=Depends(get_pickup_repo),
):
    """
    Retry verification for one of the user's requests.

    Terminal requests are not re-classified; a verified one only has its
    credit re-applied (no-op when already credited).
    """
    await _load_owned(pickups, request_id, user)

    try:
        outcome = await settlement.classify_pending(request_id)
    except ClassifierError as e:
        return await _queue_for_retry(settlement, pickups, e)

    return outcome.to_dict()


@router.get("/points/me", response_model=UserPointsResponse)
async def my_points(
    limit: int = Query(20, ge=1, le=100),
    user: UserPublic = Depends(get_current_user),
    leaderboard=Depends(get_leaderboard_service),
    ledger=Depends(get_ledger),
):
    """Points total, leaderboard rank and recent credits."""
    standing = await leaderboard.user_standing(user.user_id)
    credits = await ledger.list_credits(user.user_id, limit=limit)
    standing["credits"] = [c.to_dict() for c in credits]
    return standing


@router.get("/points/preview", response_model=PointsPreviewResponse)
async def preview_points(category: str, weight_kg: float):
    """Points a submission would earn if verified."""
    try:
        parsed = WasteCategory.parse(category)
        points = calculate_points(parsed, weight_kg)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "category": parsed.value,
        "weight_kg": weight_kg,
        "points_per_kg": points_rate(parsed),
        "points": points,
    }
