"""
Pickup request domain model
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional


class WasteCategory(str, Enum):
    """E-waste categories accepted for pickup"""
    SMARTPHONES_TABLETS = "Smartphones & Tablets"
    LAPTOPS_COMPUTERS = "Laptops & Computers"
    TVS_MONITORS = "TVs & Monitors"
    BATTERIES_POWER_BANKS = "Batteries & Power Banks"
    CABLES_CHARGERS = "Cables & Chargers"
    OTHER_SMALL_APPLIANCES = "Other Small Appliances"

    @classmethod
    def parse(cls, value) -> 'WasteCategory':
        """
        Accept an enum member, its display value, or its member name.

        Raises:
            ValueError: if value names no category
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            for member in cls:
                if text == member.value or text.upper() == member.name:
                    return member
        raise ValueError(f"Unknown e-waste category: {value!r}")


class VerificationStatus(str, Enum):
    """Verification lifecycle. pending -> verified | rejected, terminal once set."""
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not VerificationStatus.PENDING


@dataclass(frozen=True)
class VerificationVerdict:
    """
    Classifier judgment on whether an image matches the claimed category.

    Stored as JSONB on pickup_requests.ai_verification_result using the
    camelCase keys the classifier returns.
    """
    is_verified: bool
    detected_items: List[str]
    confidence: float  # 0-100
    reasoning: str
    model: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "isVerified": self.is_verified,
            "detectedItems": list(self.detected_items),
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }
        if self.model:
            data["model"] = self.model
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'VerificationVerdict':
        return cls(
            is_verified=bool(data["isVerified"]),
            detected_items=list(data.get("detectedItems") or []),
            confidence=data.get("confidence", 0),
            reasoning=data.get("reasoning", ""),
            model=data.get("model"),
        )


@dataclass
class PickupRequest:
    """
    PickupRequest domain model - storage-agnostic representation

    Storage: PostgreSQL (pickup_requests table)

    calculated_points is fixed at creation time. It is credited to the
    submitter's ledger row only if verification_status becomes VERIFIED,
    and at most once.

    The id is assigned by the store on create (pk_xxxxxxxx) and never changes.
    """
    id: str
    submitter_id: str  # opaque user id from the identity provider
    address: str
    category: WasteCategory
    weight_kg: float
    calculated_points: int

    verification_status: VerificationStatus = VerificationStatus.PENDING
    ai_verification_result: Optional[VerificationVerdict] = None
    image_ref: Optional[str] = None

    # Timestamps
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.verification_status == VerificationStatus.PENDING

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VerificationStatus.VERIFIED

    @property
    def is_rejected(self) -> bool:
        return self.verification_status == VerificationStatus.REJECTED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submitter_id": self.submitter_id,
            "address": self.address,
            "category": self.category.value,
            "weight_kg": self.weight_kg,
            "calculated_points": self.calculated_points,
            "verification_status": self.verification_status.value,
            "ai_verification_result": (
                self.ai_verification_result.to_dict() if self.ai_verification_result else None
            ),
            "image_ref": self.image_ref,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
