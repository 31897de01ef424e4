"""
Job queue.

The worker talks to the queue through the `JobQueue` protocol. The shipped
transport, `InMemoryJobQueue`, keeps scheduled jobs in process memory and
provides what the processors rely on:

- delayed delivery (`enqueue(..., delay=)` and `move_to_delayed`)
- at-least-once redelivery of failed jobs, with exponential backoff, until
  the attempt budget is spent; then the job is dead-lettered
- repeatable jobs, rescheduled `repeat_every` after each run
- `close()`, which stops delivery and waits for the in-flight job
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Protocol

from mythicstats.config import JOB_INITIAL_BACKOFF_SECONDS, JOB_MAX_ATTEMPTS
from mythicstats.services.staleness import utcnow

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    DELAYED = "delayed"
    FAILED = "failed"


@dataclass
class Job:
    """One queued unit of work."""

    id: str
    name: str
    payload: dict[str, Any]
    run_at: datetime
    repeat_every: timedelta | None = None
    state: JobState = JobState.PENDING
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime = field(default_factory=utcnow)


class JobQueue(Protocol):
    async def enqueue(
        self,
        name: str,
        payload: dict[str, Any],
        *,
        delay: timedelta | None = None,
        repeat_every: timedelta | None = None,
        job_id: str | None = None,
    ) -> Job: ...

    async def next_job(self, timeout: float) -> Job | None: ...

    async def move_to_delayed(self, job: Job, fire_at: datetime) -> None: ...

    async def complete(self, job: Job) -> None: ...

    async def fail(self, job: Job, error: BaseException) -> None: ...

    async def close(self) -> None: ...


class InMemoryJobQueue:
    """
    Process-local job queue.

    Jobs are keyed by id: enqueueing an id that is already scheduled replaces
    the scheduled job, so registering repeatable jobs twice is harmless.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        max_attempts: int = JOB_MAX_ATTEMPTS,
        initial_backoff: float = JOB_INITIAL_BACKOFF_SECONDS,
    ):
        self._clock = clock
        self._max_attempts = max_attempts
        self._initial_backoff = initial_backoff
        self._scheduled: dict[str, Job] = {}
        self._dead_letter: list[Job] = []
        self._in_flight: Job | None = None
        self._changed = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    @property
    def scheduled(self) -> list[Job]:
        return sorted(self._scheduled.values(), key=lambda job: job.run_at)

    @property
    def dead_letter(self) -> list[Job]:
        return list(self._dead_letter)

    @property
    def closed(self) -> bool:
        return self._closed

    async def enqueue(
        self,
        name: str,
        payload: dict[str, Any],
        *,
        delay: timedelta | None = None,
        repeat_every: timedelta | None = None,
        job_id: str | None = None,
    ) -> Job:
        if self._closed:
            raise RuntimeError("Queue is closed")

        job = Job(
            id=job_id or uuid.uuid4().hex,
            name=name,
            payload=dict(payload),
            run_at=self._clock() + (delay or timedelta(0)),
            repeat_every=repeat_every,
        )
        self._schedule(job)
        logger.debug("JOB_ENQUEUED", extra={"job_id": job.id, "job_name": name})
        return job

    async def next_job(self, timeout: float) -> Job | None:
        """
        Hand out the earliest due job, waiting up to `timeout` seconds.

        Returns None on timeout or once the queue is closed.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while not self._closed:
            job = self._pop_due()
            if job is not None:
                return job

            wait = deadline - loop.time()
            if wait <= 0:
                return None
            earliest = self._seconds_until_earliest()
            if earliest is not None:
                wait = min(wait, earliest)

            self._changed.clear()
            try:
                await asyncio.wait_for(self._changed.wait(), timeout=wait)
            except TimeoutError:
                pass

        return None

    async def move_to_delayed(self, job: Job, fire_at: datetime) -> None:
        """Reschedule an in-flight job without counting an attempt."""
        job.state = JobState.DELAYED
        job.run_at = fire_at
        self._release(job)
        self._schedule(job)

    async def complete(self, job: Job) -> None:
        job.state = JobState.COMPLETED
        self._release(job)
        self._schedule_repeat(job)

    async def fail(self, job: Job, error: BaseException) -> None:
        job.attempts += 1
        job.last_error = f"{type(error).__name__}: {error}"
        self._release(job)

        if job.attempts < self._max_attempts:
            backoff = self._initial_backoff * 2 ** (job.attempts - 1)
            job.state = JobState.PENDING
            job.run_at = self._clock() + timedelta(seconds=backoff)
            self._schedule(job)
            logger.warning(
                "JOB_RETRY_SCHEDULED",
                extra={"job_id": job.id, "attempts": job.attempts, "delay_seconds": backoff},
            )
            return

        job.state = JobState.FAILED
        self._dead_letter.append(job)
        logger.error(
            "JOB_DEAD_LETTERED",
            extra={"job_id": job.id, "job_name": job.name, "error": job.last_error},
        )
        self._schedule_repeat(job)

    async def close(self) -> None:
        """Stop delivering jobs and wait for the in-flight job to settle."""
        self._closed = True
        self._changed.set()
        await self._idle.wait()
        logger.info("QUEUE_CLOSED", extra={"scheduled": len(self._scheduled)})

    # --- internals ---

    def _schedule(self, job: Job) -> None:
        self._scheduled[job.id] = job
        self._changed.set()

    def _schedule_repeat(self, job: Job) -> None:
        if job.repeat_every is None or self._closed:
            return
        self._schedule(
            Job(
                id=job.id,
                name=job.name,
                payload=dict(job.payload),
                run_at=self._clock() + job.repeat_every,
                repeat_every=job.repeat_every,
            )
        )

    def _pop_due(self) -> Job | None:
        now = self._clock()
        due = [job for job in self._scheduled.values() if job.run_at <= now]
        if not due:
            return None
        job = min(due, key=lambda j: j.run_at)
        del self._scheduled[job.id]
        job.state = JobState.RUNNING
        self._in_flight = job
        self._idle.clear()
        return job

    def _release(self, job: Job) -> None:
        if self._in_flight is job:
            self._in_flight = None
            self._idle.set()

    def _seconds_until_earliest(self) -> float | None:
        if not self._scheduled:
            return None
        earliest = min(job.run_at for job in self._scheduled.values())
        return max((earliest - self._clock()).total_seconds(), 0.0)
