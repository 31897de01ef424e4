"""
Background worker.

Pulls jobs from the queue one at a time (concurrency 1) and runs them with
their processor, in a database session of their own.

Can be run as a standalone script:

    python -m mythicstats.jobs.worker
"""

import asyncio
import logging
import signal
from collections.abc import Callable
from datetime import datetime

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mythicstats.config import settings
from mythicstats.db.database import async_session_factory, dispose_db, init_db
from mythicstats.jobs.processors import JobContext, create_processor
from mythicstats.jobs.queue import InMemoryJobQueue, Job, JobQueue, JobState
from mythicstats.jobs.register import register_jobs
from mythicstats.services.staleness import utcnow
from mythicstats.services.sync_client import Sleep, create_http_client

logger = logging.getLogger(__name__)


class Worker:
    def __init__(
        self,
        queue: JobQueue,
        http: httpx.AsyncClient,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        *,
        clock: Callable[[], datetime] = utcnow,
        sleep: Sleep = asyncio.sleep,
        poll_interval: float = settings.worker_poll_interval_seconds,
    ):
        self._queue = queue
        self._http = http
        self._session_factory = session_factory
        self._clock = clock
        self._sleep = sleep
        self._poll_interval = poll_interval
        self._stopping = asyncio.Event()

    def request_stop(self) -> None:
        """Finish the current job, then stop."""
        logger.info("WORKER_STOP_REQUESTED")
        self._stopping.set()

    async def run(self) -> None:
        logger.info("WORKER_STARTED", extra={"queue": settings.queue_name})
        while not self._stopping.is_set():
            job = await self._queue.next_job(timeout=self._poll_interval)
            if job is None:
                continue
            await self.handle(job)
        logger.info("WORKER_STOPPED")

    async def handle(self, job: Job) -> JobState:
        """
        Run one job and settle it with the queue.

        COMPLETED and DELAYED runs are committed; a FAILED run is rolled back
        and handed to the queue's retry policy.
        """
        logger.info("JOB_STARTED", extra={"job_id": job.id, "job_name": job.name})

        async with self._session_factory() as session:
            context = JobContext(
                session=session,
                http=self._http,
                queue=self._queue,
                clock=self._clock,
                sleep=self._sleep,
            )
            try:
                processor = create_processor(job.name)
                state = await processor.process(job, context)
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.exception(
                    "JOB_FAILED",
                    extra={"job_id": job.id, "job_name": job.name, "error": str(e)},
                )
                await self._queue.fail(job, e)
                return JobState.FAILED

        if state == JobState.COMPLETED:
            await self._queue.complete(job)
        return state


async def run_worker() -> None:
    """Own the queue and HTTP client for the lifetime of the worker."""
    await init_db()
    queue = InMemoryJobQueue()

    async with create_http_client(settings) as http:
        async with async_session_factory() as session:
            await register_jobs(session, queue)

        worker = Worker(queue, http)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, worker.request_stop)

        await worker.run()
        await queue.close()

    await dispose_db()


def main() -> None:
    """CLI entry point for the background worker."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
