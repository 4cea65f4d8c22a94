"""
Redis-based job queue for the settlement worker

Uses LPUSH/BRPOP for efficient queue consumption

Queues:
- queue:settlement:high  - pending pickup requests awaiting classification
"""
import json
import redis.asyncio as redis
from typing import Optional


class JobQueue:
    """
    Redis-based job queue system

    Workers use BRPOP (blocking pop) for efficient consumption.
    Each job is consumed by exactly ONE worker (round-robin).
    """

    def __init__(self, redis_url: str):
        self.redis = None
        self.redis_url = redis_url

    async def connect(self):
        """Initialize Redis connection"""
        self.redis = await redis.from_url(self.redis_url, decode_responses=True)

    async def close(self):
        """Close Redis connection"""
        if self.redis:
            await self.redis.close()

    async def enqueue(self, queue_name: str, job: dict):
        """
        Add job to queue

        Example:
            await queue.enqueue('queue:settlement:high', {
                'request_id': 'pk_x5b8r2yj',
                'reason': 'stale'
            })
        """
        await self.redis.lpush(queue_name, json.dumps(job))

    async def enqueue_once(self, queue_name: str, job: dict, dedupe_key: str, ttl_seconds: int) -> bool:
        """
        Enqueue unless a job with the same dedupe_key was queued in the last
        ttl_seconds. The marker is a SET NX EX key, so it expires on its own
        and a lost job is queued again on a later call.

        Returns True if the job was pushed.
        """
        marker = f"queued:{dedupe_key}"
        if not await self.redis.set(marker, "1", nx=True, ex=max(1, int(ttl_seconds))):
            return False
        await self.redis.lpush(queue_name, json.dumps(job))
        return True

    async def dequeue(self, queue_name: str, timeout: int = 5) -> Optional[dict]:
        """
        Blocking pop from queue (BRPOP)

        Blocks until job available or timeout.
        Returns None on timeout.
        """
        result = await self.redis.brpop(queue_name, timeout=timeout)
        if result:
            # result is a tuple: (queue_name, job_json)
            return json.loads(result[1])
        return None
