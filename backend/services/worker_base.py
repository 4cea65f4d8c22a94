"""
Base worker class for queue-driven background work

- Redis queue consumption (BRPOP)
- Signal handling (graceful shutdown)
- State-driven decision before processing (should_process)
"""
import asyncio
import signal
import logging
from typing import Tuple
from services.job_queue import JobQueue

logger = logging.getLogger(__name__)


class BaseWorker:
    """
    Base class for queue workers

    Subclasses implement:
    - get_state(job): load current state from PostgreSQL
    - should_process(state): decide from state whether work is still needed
    - process(job, state): do the work
    - handle_error(job, error): optional retry policy
    """

    def __init__(
        self,
        pool,
        job_queue: JobQueue,
        worker_name: str,
        queue_name: str
    ):
        self.pool = pool
        self.job_queue = job_queue
        self.worker_name = worker_name
        self.queue_name = queue_name
        self.running = False
        self.jobs_processed = 0
        self.jobs_skipped = 0
        self.jobs_failed = 0

    async def start(self):
        """
        Main worker loop

        Continuously:
        1. BRPOP from queue (blocks until job available)
        2. Fetch current state from PostgreSQL
        3. Decide if should process
        4. Process, or hand failures to handle_error
        """
        self._setup_signal_handlers()

        self.running = True
        logger.info(f"[{self.worker_name}] Started, listening on {self.queue_name}")

        while self.running:
            try:
                job = await self.job_queue.dequeue(self.queue_name, timeout=5)
                if job:
                    await self.run_job(job)

            except asyncio.CancelledError:
                logger.info(f"[{self.worker_name}] Received cancellation signal")
                break
            except Exception as e:
                logger.error(f"[{self.worker_name}] Worker loop error: {e}", exc_info=True)
                await asyncio.sleep(1)

        logger.info(
            f"[{self.worker_name}] Shutting down. "
            f"Processed: {self.jobs_processed}, Skipped: {self.jobs_skipped}, Failed: {self.jobs_failed}"
        )

    async def run_job(self, job: dict):
        """Handle one dequeued job end to end."""
        logger.debug(f"[{self.worker_name}] Received job: {job}")

        try:
            state = await self.get_state(job)
            should_process, reason = await self.should_process(state)

            if not should_process:
                self.jobs_skipped += 1
                logger.info(f"[{self.worker_name}] Skipping job: {reason}")
                return

            await self.process(job, state)
            self.jobs_processed += 1

        except Exception as e:
            self.jobs_failed += 1
            logger.error(f"[{self.worker_name}] Job failed: {e}", exc_info=True)
            await self.handle_error(job, e)

    def _setup_signal_handlers(self):
        """Setup graceful shutdown on SIGTERM/SIGINT"""
        def shutdown_handler(signum, frame):
            logger.info(f"[{self.worker_name}] Received signal {signum}, shutting down...")
            self.running = False

        signal.signal(signal.SIGTERM, shutdown_handler)
        signal.signal(signal.SIGINT, shutdown_handler)

    async def process(self, job: dict, state: dict):
        """
        Override in subclass - do the actual work

        Args:
            job: Job data from queue
            state: Current state from PostgreSQL
        """
        raise NotImplementedError(f"{self.__class__.__name__} must implement process()")

    async def should_process(self, state: dict) -> Tuple[bool, str]:
        """
        Override in subclass - decide from current state

        Returns:
            (should_process, reason)
        """
        raise NotImplementedError(f"{self.__class__.__name__} must implement should_process()")

    async def get_state(self, job: dict) -> dict:
        """Override in subclass - fetch current state from PostgreSQL"""
        raise NotImplementedError(f"{self.__class__.__name__} must implement get_state()")

    async def handle_error(self, job: dict, error: Exception):
        """
        Handle job processing error

        Default: Log error
        Override in subclass for custom error handling (e.g., retry logic)
        """
        logger.error(
            f"[{self.worker_name}] Error processing job {job}: {error}",
            exc_info=True
        )
