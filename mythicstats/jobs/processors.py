"""
Job processors.

A processor runs one job for one user and reports how it ended:

    PENDING -> RUNNING -> COMPLETED | DELAYED | FAILED

RATE LIMIT DEFERRAL:
The quota ledger is checked when the job starts and again before every
API-bound unit of work. An exhausted budget (checked locally, or reported by
the pricing API mid-run) moves the job to DELAYED, firing at the ledger's
reset time. Deferral is not a failure and does not use up a retry attempt.

Re-running a deferred job is safe: staleness gates are re-evaluated, so
records synced before the deferral are skipped.

Any other error propagates; the worker marks the job FAILED and the queue
applies its retry policy.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from mythicstats.db.operations import get_user
from mythicstats.jobs.queue import Job, JobQueue, JobState
from mythicstats.services.catalog_sync import CatalogSynchronizer
from mythicstats.services.errors import RateLimitExceededError
from mythicstats.services.price_update import PriceUpdateService
from mythicstats.services.quota_ledger import QuotaLedger
from mythicstats.services.staleness import utcnow
from mythicstats.services.sync_client import Sleep, SyncClient
from mythicstats.services.tracking import TrackingService

logger = logging.getLogger(__name__)

DISCOVER_SETS = "discover-sets"
SYNC_TRACKED_SETS = "sync-tracked-sets"
UPDATE_INVENTORY_PRICES = "update-inventory-prices"


@dataclass
class JobContext:
    """Collaborators a processor needs, owned by the worker."""

    session: AsyncSession
    http: httpx.AsyncClient
    queue: JobQueue
    clock: Callable[[], datetime] = utcnow
    sleep: Sleep = asyncio.sleep


@dataclass
class SyncRun:
    """Per-job wiring: one user's ledger, client and synchronizer."""

    user_id: int
    session: AsyncSession
    ledger: QuotaLedger
    synchronizer: CatalogSynchronizer
    clock: Callable[[], datetime] = utcnow

    async def ensure_quota(self) -> None:
        ensure_quota(self.ledger)


def ensure_quota(ledger: QuotaLedger) -> None:
    """
    Gate for one API-bound unit of work.

    Raises:
        RateLimitExceededError: If the next call does not fit the budget
    """
    check = ledger.check_can_proceed(1)
    if not check.allowed:
        raise RateLimitExceededError(
            check.reason or "Rate limit exceeded", reset_time=ledger.reset_time()
        )


# --- Handlers ---

Handler = Callable[[SyncRun], Awaitable[int]]


async def discover_sets(run: SyncRun) -> int:
    tracking = TrackingService(run.session, run.synchronizer, clock=run.clock)
    return await tracking.discover_sets_for_tracked_games(run.user_id, before_each=run.ensure_quota)


async def sync_tracked_sets(run: SyncRun) -> int:
    tracking = TrackingService(run.session, run.synchronizer, clock=run.clock)
    return await tracking.sync_cards_for_tracked_sets(run.user_id, before_each=run.ensure_quota)


async def update_inventory_prices(run: SyncRun) -> int:
    prices = PriceUpdateService(run.session, run.synchronizer, clock=run.clock)
    return await prices.update_inventory_prices(run.user_id, before_each=run.ensure_quota)


HANDLERS: dict[str, Handler] = {
    DISCOVER_SETS: discover_sets,
    SYNC_TRACKED_SETS: sync_tracked_sets,
    UPDATE_INVENTORY_PRICES: update_inventory_prices,
}


class Processor:
    """Runs one kind of job; `process` reports the state the job ended in."""

    def __init__(self, name: str, handler: Handler):
        self.name = name
        self._handler = handler

    async def process(self, job: Job, context: JobContext) -> JobState:
        user_id = int(job.payload["user_id"])
        user = await get_user(context.session, user_id)
        if user is None:
            raise LookupError(f"User {user_id} not found")

        ledger = QuotaLedger(context.session, user, clock=context.clock)
        client = SyncClient(context.http, ledger, sleep=context.sleep)
        run = SyncRun(
            user_id=user_id,
            session=context.session,
            ledger=ledger,
            synchronizer=CatalogSynchronizer(context.session, client, clock=context.clock),
            clock=context.clock,
        )

        try:
            ensure_quota(ledger)
            processed = await self._handler(run)
        except RateLimitExceededError as e:
            fire_at = e.reset_time or ledger.reset_time()
            await context.queue.move_to_delayed(job, fire_at)
            logger.info(
                "RATE_LIMIT_DEFERRED",
                extra={
                    "job_id": job.id,
                    "job_name": self.name,
                    "user_id": user_id,
                    "reason": e.reason,
                    "fire_at": fire_at.isoformat(),
                },
            )
            return JobState.DELAYED

        logger.info(
            "JOB_COMPLETED",
            extra={"job_id": job.id, "job_name": self.name, "user_id": user_id, "processed": processed},
        )
        return JobState.COMPLETED


def create_processor(job_name: str) -> Processor:
    """
    Processor for a job name.

    Raises:
        ValueError: If the job name is not one of the known jobs
    """
    handler = HANDLERS.get(job_name)
    if handler is None:
        raise ValueError(f"Unknown job: {job_name}")
    return Processor(job_name, handler)
