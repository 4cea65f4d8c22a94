"""
Run Settlement Worker

Launches the worker that classifies and settles queued pickup requests
"""
import os
from pathlib import Path

# Load .env from project root (one level up from backend/)
from dotenv import load_dotenv
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)

import asyncio
import logging
from config import create_postgres_pool, create_job_queue
from workers.settlement_worker import SettlementWorker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main():
    """Main worker entry point"""
    # Get worker ID from environment (for scaling)
    worker_id = int(os.getenv('WORKER_ID', '1'))

    db_pool = await create_postgres_pool(min_size=2, max_size=5)
    job_queue = await create_job_queue()

    worker = SettlementWorker(db_pool, job_queue, worker_id=worker_id)

    logger.info(f"Starting settlement worker {worker_id}")

    try:
        await worker.start()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    finally:
        await db_pool.close()
        await job_queue.close()
        logger.info("Worker shut down cleanly")


if __name__ == '__main__':
    asyncio.run(main())
