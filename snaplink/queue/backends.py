"""
Queue backends for analytics jobs.

Both backends keep the same five buckets:

- waiting: jobs ready to be reserved, consumed in FIFO order
- active: jobs reserved by a consumer and not yet acknowledged
- delayed: jobs scheduled for a retry at a given time
- completed: a counter of acknowledged jobs
- failed: the most recent jobs that exhausted their attempts
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

import redis.asyncio as redis
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from snaplink.core.config import QueueBackendType, settings
from snaplink.queue.models import JobEnvelope


class QueueBackend(ABC):
    """
    Abstract storage for the analytics job queue.

    Service and worker code talk to this interface only.
    """

    @abstractmethod
    async def push(self, envelope: JobEnvelope) -> str:
        """
        Add a job to the waiting list.

        Returns:
            The job id
        """

    @abstractmethod
    async def reserve(self, timeout: float = 0) -> Optional[JobEnvelope]:
        """
        Move the oldest waiting job to the active list and return it.

        Args:
            timeout: Seconds to block while the waiting list is empty; 0 returns immediately

        Returns:
            The reserved job, or None if nothing became available
        """

    @abstractmethod
    async def complete(self, envelope: JobEnvelope) -> None:
        """Acknowledge an active job."""

    @abstractmethod
    async def retry(self, envelope: JobEnvelope, delay: float) -> None:
        """Move an active job to the delayed set, due after ``delay`` seconds."""

    @abstractmethod
    async def fail(self, envelope: JobEnvelope) -> None:
        """Move an active job to the failed list."""

    @abstractmethod
    async def promote_due(self, now: Optional[float] = None) -> int:
        """
        Move delayed jobs whose due time has passed back to the waiting list.

        Returns:
            Number of jobs promoted
        """

    @abstractmethod
    async def recover_stalled(self, older_than: float = 0, now: Optional[float] = None) -> int:
        """
        Requeue active jobs reserved at least ``older_than`` seconds ago.

        Jobs a crashed consumer had reserved are delivered again. Jobs reserved
        more recently are left alone, since their consumer may still be working.

        Args:
            older_than: Stall timeout in seconds; 0 requeues every reserved job
            now: Reference time, defaults to the current time

        Returns:
            Number of jobs requeued
        """

    @abstractmethod
    async def counts(self) -> Dict[str, int]:
        """Sizes of the waiting, active, delayed, completed and failed buckets."""

    async def close(self) -> None:
        pass


class RedisQueueBackend(QueueBackend):
    """
    Redis implementation of the analytics queue.

    Layout under ``{prefix}:{name}``:
    - ``:waiting`` / ``:active`` lists of job ids; BLMOVE makes reservation atomic
    - ``:delayed`` sorted set of job ids scored by due time
    - ``:reserved`` sorted set of active job ids scored by reservation time
    - ``:jobs`` hash of job id to envelope JSON
    - ``:completed`` counter and ``:failed`` capped list of envelope JSON

    Jobs survive API and worker restarts as long as Redis does.
    """

    def __init__(
        self,
        client: redis.Redis,
        name: str = "analytics",
        key_prefix: str = "snaplink:queue",
        failed_retention: int = 1000,
    ):
        """
        Args:
            client: Redis client with decode_responses enabled
            name: Queue name
            key_prefix: Namespace for all queue keys
            failed_retention: Number of failed jobs kept for inspection
        """
        self.client = client
        self.name = name
        self.failed_retention = failed_retention
        base = f"{key_prefix}:{name}"
        self.waiting_key = f"{base}:waiting"
        self.active_key = f"{base}:active"
        self.delayed_key = f"{base}:delayed"
        self.reserved_key = f"{base}:reserved"
        self.jobs_key = f"{base}:jobs"
        self.completed_key = f"{base}:completed"
        self.failed_key = f"{base}:failed"

    async def push(self, envelope: JobEnvelope) -> str:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(self.jobs_key, envelope.id, envelope.model_dump_json())
            pipe.lpush(self.waiting_key, envelope.id)
            await pipe.execute()
        return envelope.id

    async def reserve(self, timeout: float = 0) -> Optional[JobEnvelope]:
        if timeout > 0:
            job_id = await self.client.blmove(
                self.waiting_key, self.active_key, timeout, src="RIGHT", dest="LEFT"
            )
        else:
            job_id = await self.client.lmove(
                self.waiting_key, self.active_key, src="RIGHT", dest="LEFT"
            )
        if job_id is None:
            return None
        await self.client.zadd(self.reserved_key, {job_id: time.time()})

        raw = await self.client.hget(self.jobs_key, job_id)
        if raw is None:
            logger.warning(f"Reserved job {job_id} has no stored payload, dropping")
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.lrem(self.active_key, 1, job_id)
                pipe.zrem(self.reserved_key, job_id)
                await pipe.execute()
            return None

        try:
            return JobEnvelope.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.error(f"Stored job envelope {job_id} is unreadable, moving to failed: {e}")
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.lrem(self.active_key, 1, job_id)
                pipe.zrem(self.reserved_key, job_id)
                pipe.hdel(self.jobs_key, job_id)
                pipe.lpush(self.failed_key, raw)
                pipe.ltrim(self.failed_key, 0, self.failed_retention - 1)
                await pipe.execute()
            return None

    async def complete(self, envelope: JobEnvelope) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.lrem(self.active_key, 1, envelope.id)
            pipe.zrem(self.reserved_key, envelope.id)
            pipe.hdel(self.jobs_key, envelope.id)
            pipe.incr(self.completed_key)
            await pipe.execute()

    async def retry(self, envelope: JobEnvelope, delay: float) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(self.jobs_key, envelope.id, envelope.model_dump_json())
            pipe.lrem(self.active_key, 1, envelope.id)
            pipe.zrem(self.reserved_key, envelope.id)
            pipe.zadd(self.delayed_key, {envelope.id: time.time() + delay})
            await pipe.execute()

    async def fail(self, envelope: JobEnvelope) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.lrem(self.active_key, 1, envelope.id)
            pipe.zrem(self.reserved_key, envelope.id)
            pipe.hdel(self.jobs_key, envelope.id)
            pipe.lpush(self.failed_key, envelope.model_dump_json())
            pipe.ltrim(self.failed_key, 0, self.failed_retention - 1)
            await pipe.execute()

    async def promote_due(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        due_ids = await self.client.zrangebyscore(self.delayed_key, "-inf", now)
        promoted = 0
        for job_id in due_ids:
            # ZREM succeeds for exactly one promoter when several workers race
            if await self.client.zrem(self.delayed_key, job_id):
                await self.client.lpush(self.waiting_key, job_id)
                promoted += 1
        return promoted

    async def recover_stalled(self, older_than: float = 0, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        cutoff = now - older_than
        recovered = 0
        for job_id in await self.client.lrange(self.active_key, 0, -1):
            reserved_at = await self.client.zscore(self.reserved_key, job_id)
            if reserved_at is None:
                # Consumer stopped between the move and the timestamp; start its clock now
                await self.client.zadd(self.reserved_key, {job_id: now}, nx=True)
                continue
            if reserved_at > cutoff:
                continue
            # LREM succeeds for exactly one recoverer when several workers race
            if await self.client.lrem(self.active_key, 1, job_id):
                async with self.client.pipeline(transaction=True) as pipe:
                    pipe.zrem(self.reserved_key, job_id)
                    pipe.rpush(self.waiting_key, job_id)
                    await pipe.execute()
                recovered += 1
        return recovered

    async def counts(self) -> Dict[str, int]:
        async with self.client.pipeline(transaction=False) as pipe:
            pipe.llen(self.waiting_key)
            pipe.llen(self.active_key)
            pipe.zcard(self.delayed_key)
            pipe.get(self.completed_key)
            pipe.llen(self.failed_key)
            waiting, active, delayed, completed, failed = await pipe.execute()
        return {
            "waiting": int(waiting),
            "active": int(active),
            "delayed": int(delayed),
            "completed": int(completed or 0),
            "failed": int(failed),
        }


class InMemoryQueueBackend(QueueBackend):
    """
    In-process implementation of the analytics queue.

    Used in tests and single-process development setups. Jobs are lost when
    the process exits.
    """

    def __init__(self, failed_retention: int = 1000):
        self._waiting: Deque[str] = deque()
        self._active: Dict[str, JobEnvelope] = {}
        self._reserved_at: Dict[str, float] = {}
        self._delayed: List[Tuple[float, str]] = []
        self._jobs: Dict[str, JobEnvelope] = {}
        self._completed = 0
        self._failed: Deque[JobEnvelope] = deque(maxlen=failed_retention)
        self._condition = asyncio.Condition()

    @property
    def failed_jobs(self) -> List[JobEnvelope]:
        """Failed jobs, most recent first."""
        return list(self._failed)

    async def push(self, envelope: JobEnvelope) -> str:
        async with self._condition:
            self._jobs[envelope.id] = envelope.model_copy(deep=True)
            self._waiting.append(envelope.id)
            self._condition.notify()
        return envelope.id

    async def reserve(self, timeout: float = 0) -> Optional[JobEnvelope]:
        async with self._condition:
            if not self._waiting and timeout > 0:
                try:
                    await asyncio.wait_for(
                        self._condition.wait_for(lambda: bool(self._waiting)), timeout
                    )
                except asyncio.TimeoutError:
                    return None
            if not self._waiting:
                return None
            job_id = self._waiting.popleft()
            envelope = self._jobs[job_id]
            self._active[job_id] = envelope
            self._reserved_at[job_id] = time.time()
            return envelope.model_copy(deep=True)

    async def complete(self, envelope: JobEnvelope) -> None:
        self._active.pop(envelope.id, None)
        self._reserved_at.pop(envelope.id, None)
        self._jobs.pop(envelope.id, None)
        self._completed += 1

    async def retry(self, envelope: JobEnvelope, delay: float) -> None:
        self._active.pop(envelope.id, None)
        self._reserved_at.pop(envelope.id, None)
        self._jobs[envelope.id] = envelope.model_copy(deep=True)
        self._delayed.append((time.time() + delay, envelope.id))

    async def fail(self, envelope: JobEnvelope) -> None:
        self._active.pop(envelope.id, None)
        self._reserved_at.pop(envelope.id, None)
        self._jobs.pop(envelope.id, None)
        self._failed.appendleft(envelope.model_copy(deep=True))

    async def promote_due(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        due = [item for item in self._delayed if item[0] <= now]
        if not due:
            return 0
        self._delayed = [item for item in self._delayed if item[0] > now]
        async with self._condition:
            for _, job_id in sorted(due):
                self._waiting.append(job_id)
            self._condition.notify(len(due))
        return len(due)

    async def recover_stalled(self, older_than: float = 0, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        cutoff = now - older_than
        stalled = [job_id for job_id in self._active if self._reserved_at.get(job_id, now) <= cutoff]
        for job_id in stalled:
            del self._active[job_id]
            self._reserved_at.pop(job_id, None)
        async with self._condition:
            # Stalled jobs go ahead of newer work
            for job_id in reversed(stalled):
                self._waiting.appendleft(job_id)
            self._condition.notify(len(stalled))
        return len(stalled)

    async def counts(self) -> Dict[str, int]:
        return {
            "waiting": len(self._waiting),
            "active": len(self._active),
            "delayed": len(self._delayed),
            "completed": self._completed,
            "failed": len(self._failed),
        }


def create_queue_backend(
    backend: QueueBackendType,
    redis_client: Optional[redis.Redis] = None,
) -> QueueBackend:
    """
    Build the configured queue backend.

    Args:
        backend: Backend type from settings
        redis_client: Shared Redis client, required for the Redis backend

    Returns:
        QueueBackend instance

    Raises:
        ValueError: If the Redis backend is selected without a client
    """
    if backend == QueueBackendType.REDIS:
        if redis_client is None:
            raise ValueError("Redis queue backend requires a Redis client")
        logger.info(f"Using Redis analytics queue '{settings.ANALYTICS_QUEUE_NAME}'")
        return RedisQueueBackend(
            redis_client,
            name=settings.ANALYTICS_QUEUE_NAME,
            key_prefix=settings.ANALYTICS_QUEUE_KEY_PREFIX,
            failed_retention=settings.ANALYTICS_QUEUE_FAILED_RETENTION,
        )

    if backend == QueueBackendType.MEMORY:
        logger.info("Using in-memory analytics queue")
        return InMemoryQueueBackend(failed_retention=settings.ANALYTICS_QUEUE_FAILED_RETENTION)

    raise ValueError(f"Unknown queue backend: {backend}")
