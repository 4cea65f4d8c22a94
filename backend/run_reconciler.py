#!/usr/bin/env python3
"""
Settlement Reconciler
=====================

Background loop that repairs the two states the settlement pipeline can
be left in after a partial failure:

1. Verified requests whose points never reached the ledger -> credit once
2. Pending requests older than PENDING_STALE_MINUTES -> re-queue for
   classification by the settlement worker

Both repairs are idempotent, so overlapping runs are harmless.
"""

import asyncio
import logging
import signal
import sys
from datetime import timedelta
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / '.env')

from config import create_postgres_pool, create_job_queue, get_settings
from repositories.pickup_repository import PickupRequestRepository
from repositories.points_ledger_repository import PointsLedgerRepository
from services.image_storage import ImageStorage
from services.settlement_service import SettlementService
from services.verification_classifier import VerificationClassifier

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [reconciler] %(levelname)s: %(message)s'
)
log = logging.getLogger('reconciler')


class Reconciler:
    """Periodic SettlementService.reconcile() runner."""

    def __init__(self, settlement: SettlementService, interval: int, stale_after: timedelta, batch_size: int):
        self.settlement = settlement
        self.interval = interval
        self.stale_after = stale_after
        self.batch_size = batch_size
        self.running = True

    async def run_once(self):
        return await self.settlement.reconcile(self.stale_after, limit=self.batch_size)

    async def run(self):
        """Main loop."""
        log.info("Starting reconciler...")
        log.info(f"  Poll interval: {self.interval}s")
        log.info(f"  Stale pending after: {self.stale_after}")

        while self.running:
            try:
                report = await self.run_once()
                if report.failures:
                    log.warning(f"Unrepaired credits: {report.failures}")

                await asyncio.sleep(self.interval)

            except asyncio.CancelledError:
                log.info("Reconciler cancelled")
                break
            except Exception as e:
                log.error(f"Error in reconciler loop: {e}", exc_info=True)
                await asyncio.sleep(5)  # Back off on error

        log.info("Reconciler stopped")

    def stop(self):
        """Signal the loop to stop."""
        self.running = False


async def main():
    settings = get_settings()

    db_pool = await create_postgres_pool(min_size=1, max_size=3)
    job_queue = await create_job_queue()

    settlement = SettlementService(
        pickups=PickupRequestRepository(db_pool),
        ledger=PointsLedgerRepository(db_pool),
        classifier=VerificationClassifier.from_settings(settings),
        image_storage=ImageStorage.from_settings(settings),
        job_queue=job_queue,
    )
    reconciler = Reconciler(
        settlement,
        interval=settings.reconcile_interval_seconds,
        stale_after=timedelta(minutes=settings.pending_stale_minutes),
        batch_size=settings.reconcile_batch_size,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, reconciler.stop)

    try:
        await reconciler.run()
    finally:
        await db_pool.close()
        await job_queue.close()


if __name__ == '__main__':
    asyncio.run(main())
