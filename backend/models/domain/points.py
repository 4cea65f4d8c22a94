"""
Points ledger domain models
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class UserPoints:
    """
    Running points total for one user

    Storage: PostgreSQL (user_points table)

    Created lazily on first credit. A user with no row reads as zero.
    Only SettlementService credits mutate total_points.
    """
    user_id: str
    total_points: int = 0
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "total_points": self.total_points,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class PointsCredit:
    """
    One applied ledger credit

    Storage: PostgreSQL (points_credits table, UNIQUE pickup_request_id)

    ID format: cr_xxxxxxxx
    """
    id: str
    user_id: str
    amount: int
    pickup_request_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "pickup_request_id": self.pickup_request_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class LeaderboardEntry:
    """Ranked row derived from user_points (read-only)"""
    rank: int
    user_id: str
    total_points: int
    display_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "rank": self.rank,
            "user_id": self.user_id,
            "display_name": self.display_name or "Anonymous",
            "total_points": self.total_points,
        }


@dataclass
class ProgramStats:
    """Program-wide totals for the dashboard"""
    total_weight_kg: float = 0.0
    total_users: int = 0
    total_pickups: int = 0
    verified_pickups: int = 0
    total_points_awarded: int = 0

    def to_dict(self) -> dict:
        return {
            "total_weight_kg": round(self.total_weight_kg),
            "total_users": self.total_users,
            "total_pickups": self.total_pickups,
            "verified_pickups": self.verified_pickups,
            "total_points_awarded": self.total_points_awarded,
        }
