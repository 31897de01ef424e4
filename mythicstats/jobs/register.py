"""
Repeatable job registration.

Every user gets the three periodic jobs. Job ids are derived from the job
name and user id, so registering again replaces rather than duplicates.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from mythicstats.config import (
    DISCOVER_SETS_EVERY,
    SYNC_TRACKED_SETS_EVERY,
    UPDATE_INVENTORY_PRICES_EVERY,
)
from mythicstats.db.operations import list_users
from mythicstats.jobs.processors import DISCOVER_SETS, SYNC_TRACKED_SETS, UPDATE_INVENTORY_PRICES
from mythicstats.jobs.queue import JobQueue

logger = logging.getLogger(__name__)

SCHEDULES = {
    DISCOVER_SETS: DISCOVER_SETS_EVERY,
    SYNC_TRACKED_SETS: SYNC_TRACKED_SETS_EVERY,
    UPDATE_INVENTORY_PRICES: UPDATE_INVENTORY_PRICES_EVERY,
}


def job_id_for(job_name: str, user_id: int) -> str:
    return f"{job_name}:{user_id}"


async def register_jobs(session: AsyncSession, queue: JobQueue) -> int:
    """
    Enqueue the repeatable jobs for all users.

    Returns the number of jobs enqueued.
    """
    count = 0
    for user in await list_users(session):
        for job_name, every in SCHEDULES.items():
            await queue.enqueue(
                job_name,
                {"user_id": user.id},
                repeat_every=every,
                job_id=job_id_for(job_name, user.id),
            )
            count += 1

    logger.info("JOBS_REGISTERED", extra={"jobs": count})
    return count
