"""
Pydantic models for the pickup and points API
"""

from pydantic import BaseModel, Field
from typing import List, Optional


class VerdictResponse(BaseModel):
    """AI verification result as stored on the request"""
    isVerified: bool
    detectedItems: List[str] = Field(default_factory=list)
    confidence: float
    reasoning: str
    model: Optional[str] = None


class PickupResponse(BaseModel):
    """Pickup request as returned to its submitter"""
    id: str
    submitter_id: str
    address: str
    category: str
    weight_kg: float
    calculated_points: int
    verification_status: str
    ai_verification_result: Optional[VerdictResponse] = None
    image_ref: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class SettlementResponse(BaseModel):
    """Result of a submission or verification retry"""
    request: PickupResponse
    credited: bool
    total_points: Optional[int] = None
    message: str
    queued: bool = False


class PickupListResponse(BaseModel):
    pickups: List[PickupResponse]
    total: int


class PointsPreviewResponse(BaseModel):
    category: str
    weight_kg: float
    points_per_kg: int
    points: int


class CreditResponse(BaseModel):
    id: str
    amount: int
    pickup_request_id: Optional[str] = None
    created_at: Optional[str] = None


class UserPointsResponse(BaseModel):
    user_id: str
    total_points: int
    rank: Optional[int] = None
    credits: List[CreditResponse] = Field(default_factory=list)


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: str
    display_name: str
    total_points: int


class LeaderboardResponse(BaseModel):
    entries: List[LeaderboardEntryResponse]


class StatsResponse(BaseModel):
    total_weight_kg: float
    total_users: int
    total_pickups: int
    verified_pickups: int
    total_points_awarded: int
