"""
Analytics worker.

Consumes click jobs from the queue backend and hands each one to the
analytics processor inside its own database transaction.

Architecture:
- N consumer tasks, each reserving one job at a time
- One promoter task moving due retries back to the waiting list and
  requeueing jobs whose consumer stopped before acknowledging them
- Failed jobs are retried with exponential backoff, then parked in the failed list
"""

import asyncio
from typing import TYPE_CHECKING, Callable, List, Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from snaplink.core.telemetry import get_meter
from snaplink.db.session import SessionManager
from snaplink.queue.backends import QueueBackend
from snaplink.queue.models import ClickJob, JobEnvelope

if TYPE_CHECKING:
    from snaplink.services.analytics import AnalyticsProcessor

meter = get_meter("snaplink.worker")

processed_counter = meter.create_counter(
    name="snaplink.analytics.jobs.completed",
    description="Click jobs processed successfully",
    unit="1",
)

retried_counter = meter.create_counter(
    name="snaplink.analytics.jobs.retried",
    description="Click jobs scheduled for another attempt",
    unit="1",
)

failed_counter = meter.create_counter(
    name="snaplink.analytics.jobs.failed",
    description="Click jobs that exhausted their attempts",
    unit="1",
)


def backoff_delay(attempts: int, base_seconds: float) -> float:
    """
    Delay before the next attempt of a job that has failed ``attempts`` times.

    Doubles with every failure: base, 2*base, 4*base, ...
    """
    return base_seconds * (2 ** (attempts - 1))


class AnalyticsWorker:
    """
    Queue consumer for click analytics.

    Delivery is at-least-once: a job is acknowledged only after its
    transaction commits, so a crash between the two produces a duplicate event.
    """

    def __init__(
        self,
        backend: QueueBackend,
        processor: "AnalyticsProcessor",
        session_factory: Callable = SessionManager.transaction_context,
        concurrency: int = 4,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        poll_timeout: float = 1.0,
        promote_interval: float = 1.0,
        stall_timeout: float = 300.0,
    ):
        """
        Args:
            backend: Queue storage to consume from
            processor: Turns a ClickJob into an analytics event
            session_factory: Async context manager factory yielding a committed session
            concurrency: Number of consumer tasks
            max_attempts: Total attempts before a job is moved to the failed list
            backoff_seconds: Base retry delay
            poll_timeout: Seconds a consumer blocks waiting for work
            promote_interval: Seconds between delayed-job sweeps
            stall_timeout: Seconds after which a reserved, unacknowledged job is requeued
        """
        self.backend = backend
        self.processor = processor
        self.session_factory = session_factory
        self.concurrency = max(1, concurrency)
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.poll_timeout = poll_timeout
        self.promote_interval = promote_interval
        self.stall_timeout = stall_timeout
        self.running = False
        self.processed_count = 0
        self._tasks: List[asyncio.Task] = []

    async def start(self) -> None:
        """Requeue stalled jobs and start the consumer and promoter tasks."""
        if self.running:
            return

        await self._recover_stalled()

        self.running = True
        self._tasks = [
            asyncio.create_task(self._consume_loop(i), name=f"analytics-consumer-{i}")
            for i in range(self.concurrency)
        ]
        self._tasks.append(asyncio.create_task(self._promote_loop(), name="analytics-promoter"))
        logger.info(f"Analytics worker started with {self.concurrency} consumer(s)")

    async def stop(self) -> None:
        """Stop consuming; jobs in progress get one poll interval to finish."""
        if not self.running:
            return
        self.running = False

        _, still_running = await asyncio.wait(self._tasks, timeout=self.poll_timeout + 1)
        for task in still_running:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info(f"Analytics worker stopped after {self.processed_count} job(s)")

    async def run_once(self, timeout: Optional[float] = None) -> bool:
        """
        Reserve and handle a single job.

        Args:
            timeout: Seconds to wait for a job; defaults to the poll timeout

        Returns:
            bool: True if a job was handled
        """
        envelope = await self.backend.reserve(self.poll_timeout if timeout is None else timeout)
        if envelope is None:
            return False
        await self._handle(envelope)
        return True

    async def drain(self, include_delayed: bool = False) -> int:
        """
        Process jobs until the waiting list is empty.

        Args:
            include_delayed: Also promote and process scheduled retries
                immediately, until no delayed job is left

        Returns:
            Number of jobs handled
        """
        handled = 0
        while True:
            await self.backend.promote_due(float("inf") if include_delayed else None)
            if await self.run_once(timeout=0):
                handled += 1
                continue
            counts = await self.backend.counts()
            if counts["waiting"] == 0 and (not include_delayed or counts["delayed"] == 0):
                return handled

    async def _consume_loop(self, index: int) -> None:
        while self.running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Backend outage; keep the consumer alive and poll again
                logger.error(f"Analytics consumer {index} error: {e}")
                await asyncio.sleep(self.poll_timeout)

    async def _recover_stalled(self) -> None:
        recovered = await self.backend.recover_stalled(self.stall_timeout)
        if recovered:
            logger.warning(
                f"Requeued {recovered} job(s) reserved more than {self.stall_timeout:.0f}s ago without acknowledgement"
            )

    async def _promote_loop(self) -> None:
        while self.running:
            try:
                promoted = await self.backend.promote_due()
                if promoted:
                    logger.debug(f"Promoted {promoted} delayed job(s)")
                await self._recover_stalled()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Delayed and stalled job sweep failed: {e}")
            await asyncio.sleep(self.promote_interval)

    async def _handle(self, envelope: JobEnvelope) -> None:
        try:
            job = ClickJob.model_validate(envelope.data)
        except PydanticValidationError as e:
            envelope.last_error = f"malformed payload: {e.error_count()} validation error(s)"
            await self.backend.fail(envelope)
            failed_counter.add(1)
            logger.error(f"Discarding malformed analytics job {envelope.id}: {envelope.last_error}")
            return

        try:
            async with self.session_factory() as db:
                await self.processor.process(db, job)
        except Exception as e:
            await self._retry_or_fail(envelope, job, e)
            return

        await self.backend.complete(envelope)
        self.processed_count += 1
        processed_counter.add(1)

    async def _retry_or_fail(self, envelope: JobEnvelope, job: ClickJob, error: Exception) -> None:
        envelope.attempts += 1
        envelope.last_error = f"{type(error).__name__}: {error}"

        if envelope.attempts < self.max_attempts:
            delay = backoff_delay(envelope.attempts, self.backoff_seconds)
            await self.backend.retry(envelope, delay)
            retried_counter.add(1)
            logger.warning(
                f"Analytics job {envelope.id} for '{job.short_code}' failed "
                f"(attempt {envelope.attempts}/{self.max_attempts}), retrying in {delay:.2f}s: {envelope.last_error}"
            )
        else:
            await self.backend.fail(envelope)
            failed_counter.add(1)
            logger.error(
                f"Analytics job {envelope.id} for '{job.short_code}' failed permanently "
                f"after {envelope.attempts} attempt(s): {envelope.last_error}"
            )
