"""
Points Ledger Repository - PostgreSQL storage for user point totals

Storage: PostgreSQL (user_points, points_credits tables)

Credits are applied with an atomic upsert-increment, never a
read-modify-write from application code, so concurrent credits for the
same user are lossless. A credit tied to a pickup request is recorded in
points_credits under UNIQUE(pickup_request_id) inside the same
transaction, which makes settlement credits exactly-once per request.
"""
import logging
from typing import List, Optional

import asyncpg

from models.domain.points import PointsCredit, UserPoints
from repositories.base import DB_ERRORS
from services.errors import StoreError, ValidationError
from utils.id_generator import generate_credit_id

logger = logging.getLogger(__name__)


class PointsLedgerRepository:
    """
    Repository for UserPoints and PointsCredit

    total_points only changes through credit().
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def get(self, user_id: str) -> UserPoints:
        """
        Current total for a user.

        Returns:
            UserPoints (total_points=0 when the user has never been credited)
        """
        try:
            async with self.db_pool.acquire() as conn:
                row = await conn.fetchrow("""
                    SELECT user_id, total_points, updated_at
                    FROM user_points
                    WHERE user_id = $1
                """, user_id)
        except DB_ERRORS as e:
            raise StoreError(f"Failed to read points for {user_id}: {e}") from e

        return self._row_to_points(row, user_id)

    async def has_credit(self, pickup_request_id: str) -> bool:
        """Whether a credit has been applied for this pickup request."""
        try:
            async with self.db_pool.acquire() as conn:
                found = await conn.fetchval("""
                    SELECT 1 FROM points_credits WHERE pickup_request_id = $1
                """, pickup_request_id)
        except DB_ERRORS as e:
            raise StoreError(f"Failed to read credit record: {e}", request_id=pickup_request_id) from e

        return found is not None

    async def list_credits(self, user_id: str, limit: int = 50) -> List[PointsCredit]:
        """Credit history for a user, newest first."""
        try:
            async with self.db_pool.acquire() as conn:
                rows = await conn.fetch("""
                    SELECT id, user_id, amount, pickup_request_id, created_at
                    FROM points_credits
                    WHERE user_id = $1
                    ORDER BY created_at DESC
                    LIMIT $2
                """, user_id, limit)
        except DB_ERRORS as e:
            raise StoreError(f"Failed to read credit history: {e}") from e

        return [
            PointsCredit(
                id=row['id'],
                user_id=row['user_id'],
                amount=int(row['amount']),
                pickup_request_id=row['pickup_request_id'],
                created_at=row['created_at'],
            )
            for row in rows
        ]

    # =========================================================================
    # CREDIT OPERATION
    # =========================================================================

    async def credit(
        self,
        user_id: str,
        amount: int,
        pickup_request_id: Optional[str] = None,
    ) -> UserPoints:
        """
        Atomically add `amount` to the user's total.

        When `pickup_request_id` is given and that request was already
        credited, nothing changes and the current total is returned.

        Args:
            user_id: opaque user id
            amount: positive integer
            pickup_request_id: settlement being credited (idempotency key)

        Returns:
            UserPoints after the credit

        Raises:
            ValidationError: amount not a positive integer
            StoreError: transaction failed (no part of the credit applied)
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(
                f"Credit amount must be a positive integer, got {amount!r}",
                step="credit",
                request_id=pickup_request_id,
            )

        try:
            async with self.db_pool.acquire() as conn:
                async with conn.transaction():
                    credit_id = await conn.fetchval("""
                        INSERT INTO points_credits (id, user_id, amount, pickup_request_id, created_at)
                        VALUES ($1, $2, $3, $4, now())
                        ON CONFLICT (pickup_request_id) DO NOTHING
                        RETURNING id
                    """, generate_credit_id(), user_id, amount, pickup_request_id)

                    if credit_id is None:
                        # Already credited for this request
                        row = await conn.fetchrow("""
                            SELECT user_id, total_points, updated_at
                            FROM user_points
                            WHERE user_id = $1
                        """, user_id)
                        logger.info(f"💰 Pickup {pickup_request_id} already credited to {user_id}, skipping")
                        return self._row_to_points(row, user_id)

                    row = await conn.fetchrow("""
                        INSERT INTO user_points (user_id, total_points, updated_at)
                        VALUES ($1, $2, now())
                        ON CONFLICT (user_id)
                        DO UPDATE SET total_points = user_points.total_points + EXCLUDED.total_points,
                                      updated_at = now()
                        RETURNING user_id, total_points, updated_at
                    """, user_id, amount)
        except DB_ERRORS as e:
            raise StoreError(
                f"Failed to credit {amount} points to {user_id}: {e}",
                step="credit",
                request_id=pickup_request_id,
            ) from e

        logger.info(f"💰 Credited {amount} pts to {user_id} (total={row['total_points']})")
        return self._row_to_points(row, user_id)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _row_to_points(self, row: Optional[asyncpg.Record], user_id: str) -> UserPoints:
        if not row:
            return UserPoints(user_id=user_id, total_points=0)
        return UserPoints(
            user_id=row['user_id'],
            total_points=int(row['total_points']),
            updated_at=row['updated_at'],
        )
