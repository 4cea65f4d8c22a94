"""
Pickup Request Repository - PostgreSQL storage for pickup submissions

Storage: PostgreSQL (pickup_requests table)

The status transition pending -> verified | rejected is a single
conditional UPDATE, so status and verdict are never observably split and
a terminal record is never flipped.
"""
import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

import asyncpg

from models.domain.pickup import (
    PickupRequest,
    VerificationStatus,
    VerificationVerdict,
    WasteCategory,
)
from repositories.base import DB_ERRORS, load_json
from services.errors import (
    PickupNotFoundError,
    StoreError,
    ValidationError,
    VerificationConflictError,
)
from services.points_policy import calculate_points
from utils.id_generator import generate_pickup_id

logger = logging.getLogger(__name__)


class PickupRequestRepository:
    """
    Repository for PickupRequest domain model

    Handles creation, verdict persistence and history reads.
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    # =========================================================================
    # CREATE OPERATION
    # =========================================================================

    async def create(
        self,
        submitter_id: str,
        address: str,
        category: WasteCategory,
        weight_kg: float,
        image_ref: Optional[str] = None,
    ) -> PickupRequest:
        """
        Create a pending pickup request.

        calculated_points is fixed here via the points policy.

        Returns:
            Created request with its assigned ID

        Raises:
            StoreError: insert failed (nothing was written)
        """
        try:
            category = WasteCategory.parse(category)
            points = calculate_points(category, weight_kg)
        except ValueError as e:
            raise ValidationError(str(e), step="create") from e

        request_id = generate_pickup_id()

        try:
            async with self.db_pool.acquire() as conn:
                row = await conn.fetchrow("""
                    INSERT INTO pickup_requests (
                        id, submitter_id, address, category, weight_kg,
                        calculated_points, verification_status, image_ref,
                        created_at, updated_at
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, 'pending', $7, now(), now())
                    RETURNING *
                """,
                    request_id,
                    submitter_id,
                    address,
                    category.value,
                    Decimal(str(weight_kg)),
                    points,
                    image_ref,
                )
        except DB_ERRORS as e:
            raise StoreError(f"Failed to create pickup request: {e}", step="create") from e

        logger.info(f"📝 Pickup {request_id} created by {submitter_id} ({points} pts pending)")
        return self._row_to_pickup(row)

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def get_by_id(self, request_id: str) -> Optional[PickupRequest]:
        """Retrieve a pickup request by ID, or None."""
        try:
            async with self.db_pool.acquire() as conn:
                row = await conn.fetchrow("""
                    SELECT * FROM pickup_requests WHERE id = $1
                """, request_id)
        except DB_ERRORS as e:
            raise StoreError(f"Failed to read pickup request: {e}", request_id=request_id) from e

        return self._row_to_pickup(row) if row else None

    async def get_by_submitter(self, submitter_id: str, limit: int = 100) -> List[PickupRequest]:
        """
        Pickup history for a submitter, newest first.

        Point-in-time read; not a stream.
        """
        try:
            async with self.db_pool.acquire() as conn:
                rows = await conn.fetch("""
                    SELECT * FROM pickup_requests
                    WHERE submitter_id = $1
                    ORDER BY created_at DESC
                    LIMIT $2
                """, submitter_id, limit)
        except DB_ERRORS as e:
            raise StoreError(f"Failed to read pickup history: {e}") from e

        return [self._row_to_pickup(row) for row in rows]

    async def list_stale_pending(self, older_than: datetime, limit: int = 100) -> List[PickupRequest]:
        """Pending requests created before `older_than` (oldest first)."""
        try:
            async with self.db_pool.acquire() as conn:
                rows = await conn.fetch("""
                    SELECT * FROM pickup_requests
                    WHERE verification_status = 'pending' AND created_at < $1
                    ORDER BY created_at ASC
                    LIMIT $2
                """, older_than, limit)
        except DB_ERRORS as e:
            raise StoreError(f"Failed to list stale pending requests: {e}") from e

        return [self._row_to_pickup(row) for row in rows]

    async def list_verified_uncredited(self, limit: int = 100) -> List[PickupRequest]:
        """Verified requests with no ledger credit recorded."""
        try:
            async with self.db_pool.acquire() as conn:
                rows = await conn.fetch("""
                    SELECT p.* FROM pickup_requests p
                    LEFT JOIN points_credits c ON c.pickup_request_id = p.id
                    WHERE p.verification_status = 'verified'
                      AND p.calculated_points > 0
                      AND c.id IS NULL
                    ORDER BY p.updated_at ASC
                    LIMIT $1
                """, limit)
        except DB_ERRORS as e:
            raise StoreError(f"Failed to list uncredited requests: {e}") from e

        return [self._row_to_pickup(row) for row in rows]

    # =========================================================================
    # UPDATE OPERATIONS
    # =========================================================================

    async def update_verification(
        self,
        request_id: str,
        status: VerificationStatus,
        verdict: Optional[VerificationVerdict],
    ) -> PickupRequest:
        """
        Persist the terminal status and verdict in one write.

        Re-applying the same terminal status returns the stored record
        unchanged. Flipping verified <-> rejected is refused.

        Raises:
            ValidationError: status is not terminal
            PickupNotFoundError: no such request
            VerificationConflictError: request already in the other terminal status
            StoreError: write failed
        """
        status = VerificationStatus(status)
        if not status.is_terminal:
            raise ValidationError(
                f"Cannot set verification status to '{status.value}'",
                step="update_verification",
                request_id=request_id,
            )

        verdict_json = json.dumps(verdict.to_dict()) if verdict else None

        try:
            async with self.db_pool.acquire() as conn:
                row = await conn.fetchrow("""
                    UPDATE pickup_requests
                    SET verification_status = $2,
                        ai_verification_result = $3::jsonb,
                        updated_at = now()
                    WHERE id = $1 AND verification_status = 'pending'
                    RETURNING *
                """, request_id, status.value, verdict_json)

                if row is None:
                    row = await conn.fetchrow("""
                        SELECT * FROM pickup_requests WHERE id = $1
                    """, request_id)
        except DB_ERRORS as e:
            raise StoreError(
                f"Failed to persist verification: {e}",
                step="update_verification",
                request_id=request_id,
            ) from e

        if row is None:
            raise PickupNotFoundError(
                f"Pickup request {request_id} not found",
                step="update_verification",
                request_id=request_id,
            )

        pickup = self._row_to_pickup(row)

        if pickup.verification_status != status:
            raise VerificationConflictError(
                f"Pickup request {request_id} is already {pickup.verification_status.value}",
                step="update_verification",
                request_id=request_id,
            )

        logger.info(f"📝 Pickup {request_id} status -> {status.value}")
        return pickup

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _row_to_pickup(self, row: asyncpg.Record) -> PickupRequest:
        verdict_data = load_json(row['ai_verification_result'])
        return PickupRequest(
            id=row['id'],
            submitter_id=row['submitter_id'],
            address=row['address'],
            category=WasteCategory.parse(row['category']),
            weight_kg=float(row['weight_kg']),
            calculated_points=int(row['calculated_points']),
            verification_status=VerificationStatus(row['verification_status']),
            ai_verification_result=VerificationVerdict.from_dict(verdict_data) if verdict_data else None,
            image_ref=row['image_ref'],
            created_at=row['created_at'],
            updated_at=row['updated_at'],
        )
