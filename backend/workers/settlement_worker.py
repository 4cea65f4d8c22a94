"""
SettlementWorker - classify and settle queued pickup requests

Responsibilities:
- Consume pickup request ids from queue:settlement:high
- Run classification for requests still pending
- Re-run the credit step for verified requests the ledger has not seen
- Re-enqueue retryable failures (max 3), drop permanent ones

Decision logic:
- Process if pending, or verified without a ledger credit
- Skip if rejected, or verified and already credited
"""
import logging
from typing import Optional, Tuple

from repositories.pickup_repository import PickupRequestRepository
from repositories.points_ledger_repository import PointsLedgerRepository
from services.errors import PickupNotFoundError, PipelineError
from services.image_storage import ImageStorage
from services.job_queue import JobQueue
from services.settlement_service import SETTLEMENT_QUEUE, SettlementService
from services.verification_classifier import VerificationClassifier
from services.worker_base import BaseWorker

logger = logging.getLogger(__name__)


class SettlementWorker(BaseWorker):
    """Background classification/settlement for pending pickups"""

    MAX_RETRIES = 3

    def __init__(
        self,
        pool,
        job_queue: JobQueue,
        worker_id: int = 1,
        settlement: Optional[SettlementService] = None,
    ):
        super().__init__(
            pool=pool,
            job_queue=job_queue,
            worker_name=f"settlement-worker-{worker_id}",
            queue_name=SETTLEMENT_QUEUE
        )
        self.worker_id = worker_id
        self.settlement = settlement or SettlementService(
            pickups=PickupRequestRepository(pool),
            ledger=PointsLedgerRepository(pool),
            classifier=VerificationClassifier.from_settings(),
            image_storage=ImageStorage.from_settings(),
            job_queue=job_queue,
        )

    async def get_state(self, job: dict) -> dict:
        """
        Load the pickup request and whether it has been credited.

        Args:
            job: {'request_id': str, 'reason': str, 'retry_count': int}
        """
        request_id = job['request_id']
        request = await self.settlement.pickups.get_by_id(request_id)

        if request is None:
            raise PickupNotFoundError(f"Pickup request {request_id} not found", request_id=request_id)

        credited = False
        if request.is_verified:
            credited = await self.settlement.ledger.has_credit(request_id)

        return {'request': request, 'credited': credited}

    async def should_process(self, state: dict) -> Tuple[bool, str]:
        request = state['request']

        if request.is_pending:
            return (True, "pending classification")

        if request.is_verified and not state['credited'] and request.calculated_points > 0:
            return (True, "verified but not credited")

        return (False, f"{request.id} already {request.verification_status.value}")

    async def process(self, job: dict, state: dict):
        request = state['request']
        logger.info(f"[{self.worker_name}] Settling {request.id} ({job.get('reason', 'queued')})")

        outcome = await self.settlement.classify_pending(request.id)

        logger.info(f"[{self.worker_name}] {request.id}: {outcome.message}")

    async def handle_error(self, job: dict, error: Exception):
        """
        Retry policy

        Permanent failures (not found, conflicts, bad input) are dropped.
        Everything else is re-enqueued up to MAX_RETRIES; after that the
        request stays pending and the reconciler picks it up again later.
        """
        if isinstance(error, PipelineError) and not error.retryable:
            logger.warning(f"[{self.worker_name}] Dropping job {job}: {error}")
            return

        retry_count = job.get('retry_count', 0)

        if retry_count < self.MAX_RETRIES:
            await self.job_queue.enqueue(self.queue_name, {
                **job,
                'retry_count': retry_count + 1
            })
            logger.info(
                f"[{self.worker_name}] Re-enqueued {job.get('request_id')} "
                f"(retry {retry_count + 1}/{self.MAX_RETRIES})"
            )
        else:
            logger.error(
                f"[{self.worker_name}] Giving up on {job.get('request_id')} after "
                f"{self.MAX_RETRIES} retries: {error}"
            )
