"""
Producer side of the analytics queue.

The redirect path hands every click to ``AnalyticsQueue.submit_nowait`` and
returns immediately; publishing happens in a detached task.
"""

import asyncio
from typing import Dict, Set

from loguru import logger
from redis.exceptions import RedisError

from snaplink.core.telemetry import get_meter
from snaplink.queue.backends import QueueBackend
from snaplink.queue.models import ClickJob, JobEnvelope
from snaplink.services.exceptions import DependencyUnavailableError

meter = get_meter("snaplink.queue")

enqueued_counter = meter.create_counter(
    name="snaplink.analytics.enqueued",
    description="Click jobs published to the analytics queue",
    unit="1",
)

dropped_counter = meter.create_counter(
    name="snaplink.analytics.dropped",
    description="Click jobs lost because the queue was unavailable",
    unit="1",
)


class AnalyticsQueue:
    """
    Publishes click jobs to a queue backend.

    Keeps a reference to every in-flight submission so it is not garbage
    collected before it finishes and so shutdown can wait for it.
    """

    def __init__(self, backend: QueueBackend):
        """
        Args:
            backend: Storage the jobs are pushed to
        """
        self.backend = backend
        self._pending: Set[asyncio.Task] = set()

    async def enqueue(self, job: ClickJob) -> str:
        """
        Publish a job and wait for the backend to accept it.

        Args:
            job: The click to record

        Returns:
            The queue job id

        Raises:
            DependencyUnavailableError: If the backend cannot be reached
        """
        envelope = JobEnvelope(data=job.model_dump(mode="json"))
        try:
            job_id = await self.backend.push(envelope)
        except (RedisError, ConnectionError, OSError) as e:
            raise DependencyUnavailableError(f"Analytics queue unavailable: {e}") from e
        enqueued_counter.add(1)
        return job_id

    def submit_nowait(self, job: ClickJob) -> asyncio.Task:
        """
        Publish a job in the background without waiting for it.

        A failed publish is logged and the click is lost; it never reaches
        the caller.

        Returns:
            The detached task
        """
        task = asyncio.create_task(self._submit(job))
        self._pending.add(task)
        task.add_done_callback(self._on_submitted)
        return task

    async def _submit(self, job: ClickJob) -> None:
        try:
            await self.enqueue(job)
        except DependencyUnavailableError as e:
            dropped_counter.add(1)
            logger.warning(f"Dropping click for '{job.short_code}', analytics queue unavailable: {e}")

    def _on_submitted(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            dropped_counter.add(1)
            logger.opt(exception=error).error("Unexpected error publishing click job")

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def wait_for_pending(self) -> None:
        """Wait until every submission started so far has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def get_job_counts(self) -> Dict[str, int]:
        """
        Report queue bucket sizes.

        Raises:
            DependencyUnavailableError: If the backend cannot be reached
        """
        try:
            return await self.backend.counts()
        except (RedisError, ConnectionError, OSError) as e:
            raise DependencyUnavailableError(f"Analytics queue unavailable: {e}") from e
