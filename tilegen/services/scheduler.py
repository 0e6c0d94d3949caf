"""Batched priority/retry queue in front of every external call.

One scheduler instance is owned by the service layer and shared by all call
sites. Jobs are drained in batches of at most ``batch_size`` concurrent calls,
highest priority first. A failed or timed-out job is requeued with a priority
boost until it has used ``max_attempts`` attempts, then its future is rejected
with ExhaustedRetriesError. Jobs that wait too long get a one-time priority
bump so a stream of newer work cannot starve them.

A job holds its slot until its thunk returns. Thunks that call blocking code
should go through ``run_blocking`` so a timed-out call keeps its slot until
the worker thread is done.

All queue state is touched only from the event loop thread, so no locking is
needed.
"""

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable, Optional

from ..exceptions import ExhaustedRetriesError
from ..models.job import JobState, QueueJob

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 1
RETRY_PRIORITY_BOOST = 2
AGING_PRIORITY_BOOST = 1


async def run_blocking(func: Callable[..., Any], *args: Any) -> Any:
    """
    Run a blocking call in a worker thread from inside a scheduled job.

    Cancelling the awaiting job (a timeout) cannot stop the thread, so the
    job waits for the thread to return before the cancellation propagates.
    The scheduler's concurrency slot stays occupied for as long as the
    external call is really running.
    """
    worker = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(worker)
    except asyncio.CancelledError:
        await asyncio.wait({worker})
        if not worker.cancelled():
            # Late outcome of an abandoned attempt
            late_error = worker.exception()
            if late_error is not None:
                logger.debug("Abandoned call finished with %r", late_error)
        raise


class RequestScheduler:
    """Bounded-concurrency priority queue with retries and priority aging."""

    def __init__(
        self,
        batch_size: int = 4,
        max_attempts: int = 3,
        job_timeout: float = 120.0,
        stagger: float = 0.25,
        poll_interval: float = 0.5,
        aging_interval: float = 60.0,
        batch_delay_unit: float = 1.0,
    ):
        """
        Initialize the scheduler.

        Args:
            batch_size: Maximum jobs dispatched (and in flight) at once
            max_attempts: Total attempts per job before rejection
            job_timeout: Seconds a single attempt may run
            stagger: Delay between starts of consecutive jobs in a batch
            poll_interval: Re-check delay while a batch is active
            aging_interval: Seconds a job may wait before its priority bump
            batch_delay_unit: Seconds per unit of the inter-batch delay; the
                delay is ``clamp(queue_length / 10, 0.5, 2)`` units
        """
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.job_timeout = job_timeout
        self.stagger = stagger
        self.poll_interval = poll_interval
        self.aging_interval = aging_interval
        self.batch_delay_unit = batch_delay_unit

        self._pending: list[QueueJob] = []
        self._batch_active = False
        self._driver: Optional[asyncio.Task] = None
        self._ids = itertools.count(1)

        # Counters
        self.in_flight = 0
        self.max_in_flight = 0
        self.batches_dispatched = 0

    @classmethod
    def from_config(cls, config) -> "RequestScheduler":
        return cls(
            batch_size=config.batch_size,
            max_attempts=config.max_retries,
            job_timeout=config.api_timeout,
        )

    @property
    def queue_length(self) -> int:
        return len(self._pending)

    @property
    def pending_jobs(self) -> list[QueueJob]:
        """Snapshot of queued jobs in current order."""
        return list(self._pending)

    @property
    def is_batch_active(self) -> bool:
        return self._batch_active

    def enqueue(
        self,
        invoke: Callable[[], Awaitable[Any]],
        priority: int = DEFAULT_PRIORITY,
    ) -> asyncio.Future:
        """
        Queue a thunk for execution.

        Must be called from within a running event loop.

        Args:
            invoke: Zero-argument callable returning an awaitable
            priority: Initial priority, higher runs first

        Returns:
            Future resolved with the thunk's result, or failed with
            ExhaustedRetriesError
        """
        loop = asyncio.get_running_loop()
        job = QueueJob(
            id=f"job-{next(self._ids)}",
            invoke=invoke,
            future=loop.create_future(),
            priority=priority,
        )
        self._pending.append(job)
        self._arm_aging(job)
        logger.debug("Enqueued %s (queue length %d)", job, len(self._pending))

        self._ensure_driver()
        return job.future

    async def submit(
        self,
        invoke: Callable[[], Awaitable[Any]],
        priority: int = DEFAULT_PRIORITY,
    ) -> Any:
        """Enqueue and wait for the result."""
        return await self.enqueue(invoke, priority=priority)

    async def join(self) -> None:
        """Wait until the queue is drained and the driver has stopped."""
        while self._driver is not None and not self._driver.done():
            await asyncio.shield(self._driver)

    def _ensure_driver(self) -> None:
        if self._driver is None or self._driver.done():
            self._driver = asyncio.get_running_loop().create_task(self._drain())

    def _arm_aging(self, job: QueueJob) -> None:
        loop = asyncio.get_running_loop()
        job._aging_handle = loop.call_later(self.aging_interval, self._age_job, job)

    def _age_job(self, job: QueueJob) -> None:
        job._aging_handle = None
        if job.state is not JobState.QUEUED or job not in self._pending:
            return
        job.priority += AGING_PRIORITY_BOOST
        self._sort_pending()
        logger.debug("Aged %s after %.1fs", job, job.age)

    def _sort_pending(self) -> None:
        # Stable: equal priorities keep arrival order
        self._pending.sort(key=lambda j: j.priority, reverse=True)

    async def _drain(self) -> None:
        while self._pending:
            if self._batch_active:
                await asyncio.sleep(self.poll_interval)
                continue

            self._sort_pending()
            batch = self._pending[: self.batch_size]
            del self._pending[: self.batch_size]

            self._batch_active = True
            self.batches_dispatched += 1
            logger.debug(
                "Dispatching batch %d with %d job(s), %d still queued",
                self.batches_dispatched,
                len(batch),
                len(self._pending),
            )
            try:
                await asyncio.gather(
                    *(self._run_job(job, index) for index, job in enumerate(batch))
                )
            finally:
                self._batch_active = False

            await asyncio.sleep(self.next_batch_delay())

    def next_batch_delay(self) -> float:
        """Seconds to wait before the next batch, scaled by queue pressure."""
        pressure = min(max(len(self._pending) / 10, 0.5), 2.0)
        return round(1000 * pressure) / 1000 * self.batch_delay_unit

    async def _run_job(self, job: QueueJob, index: int) -> None:
        job.cancel_aging()
        if index and self.stagger:
            await asyncio.sleep(index * self.stagger)

        job.state = JobState.IN_FLIGHT
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            # On timeout wait_for returns only once the cancelled thunk has unwound
            result = await asyncio.wait_for(job.invoke(), timeout=self.job_timeout)
        except Exception as exc:
            self._handle_failure(job, exc)
        else:
            job.state = JobState.RESOLVED
            if not job.future.done():
                job.future.set_result(result)
            logger.debug("Resolved %s", job)
        finally:
            self.in_flight -= 1

    def _handle_failure(self, job: QueueJob, exc: Exception) -> None:
        if isinstance(exc, asyncio.TimeoutError):
            exc = TimeoutError(f"{job.id} timed out after {self.job_timeout}s")
        job.last_error = exc

        if job.retry_count < self.max_attempts - 1:
            job.retry_count += 1
            job.priority += RETRY_PRIORITY_BOOST
            job.state = JobState.QUEUED
            self._pending.append(job)
            self._arm_aging(job)
            logger.warning(
                "%s failed (attempt %d/%d): %s; requeued",
                job.id,
                job.retry_count,
                self.max_attempts,
                exc,
            )
            return

        job.state = JobState.REJECTED
        logger.error("%s rejected after %d attempts: %s", job.id, job.attempts, exc)
        if not job.future.done():
            job.future.set_exception(
                ExhaustedRetriesError(job.id, job.attempts, last_error=exc)
            )
