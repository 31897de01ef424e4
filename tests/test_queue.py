"""Tests for the in-memory job queue."""

from datetime import UTC, datetime, timedelta

import pytest

from mythicstats.jobs.queue import InMemoryJobQueue, JobState


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue(clock: FakeClock) -> InMemoryJobQueue:
    return InMemoryJobQueue(clock=clock)


class TestDelivery:
    async def test_due_job_is_delivered(self, queue: InMemoryJobQueue) -> None:
        await queue.enqueue("discover-sets", {"user_id": 1})

        job = await queue.next_job(timeout=0)

        assert job is not None
        assert job.name == "discover-sets"
        assert job.state == JobState.RUNNING

    async def test_delayed_job_waits(self, queue: InMemoryJobQueue, clock: FakeClock) -> None:
        await queue.enqueue("discover-sets", {"user_id": 1}, delay=timedelta(minutes=5))

        assert await queue.next_job(timeout=0) is None

        clock.advance(minutes=5)
        assert await queue.next_job(timeout=0) is not None

    async def test_earliest_job_first(self, queue: InMemoryJobQueue) -> None:
        await queue.enqueue("late", {}, delay=timedelta(seconds=-1))
        await queue.enqueue("early", {}, delay=timedelta(seconds=-10))

        job = await queue.next_job(timeout=0)

        assert job is not None
        assert job.name == "early"

    async def test_same_job_id_replaces(self, queue: InMemoryJobQueue) -> None:
        await queue.enqueue("sync-tracked-sets", {"user_id": 1}, job_id="sync-tracked-sets:1")
        await queue.enqueue("sync-tracked-sets", {"user_id": 1}, job_id="sync-tracked-sets:1")

        assert len(queue.scheduled) == 1


class TestSettling:
    async def test_move_to_delayed_keeps_attempts(
        self, queue: InMemoryJobQueue, clock: FakeClock
    ) -> None:
        await queue.enqueue("discover-sets", {"user_id": 1})
        job = await queue.next_job(timeout=0)
        assert job is not None
        fire_at = clock.now + timedelta(hours=12)

        await queue.move_to_delayed(job, fire_at)

        assert job.state == JobState.DELAYED
        assert job.attempts == 0
        assert queue.scheduled == [job]
        assert job.run_at == fire_at

    async def test_failed_job_backs_off_then_dead_letters(
        self, queue: InMemoryJobQueue, clock: FakeClock
    ) -> None:
        await queue.enqueue("discover-sets", {"user_id": 1})
        delays = []

        for _ in range(3):
            clock.advance(hours=1)
            job = await queue.next_job(timeout=0)
            assert job is not None
            await queue.fail(job, RuntimeError("boom"))
            if job.state == JobState.PENDING:
                delays.append((job.run_at - clock.now).total_seconds())

        assert delays == [2.0, 4.0]
        assert job.state == JobState.FAILED
        assert queue.dead_letter == [job]
        assert job.last_error == "RuntimeError: boom"
        assert queue.scheduled == []

    async def test_repeatable_job_rescheduled_on_completion(
        self, queue: InMemoryJobQueue, clock: FakeClock
    ) -> None:
        await queue.enqueue(
            "update-inventory-prices",
            {"user_id": 1},
            repeat_every=timedelta(hours=1),
            job_id="update-inventory-prices:1",
        )
        job = await queue.next_job(timeout=0)
        assert job is not None

        await queue.complete(job)

        assert job.state == JobState.COMPLETED
        [next_run] = queue.scheduled
        assert next_run.id == "update-inventory-prices:1"
        assert next_run.run_at == clock.now + timedelta(hours=1)
        assert next_run.state == JobState.PENDING


class TestClose:
    async def test_close_stops_delivery(self, queue: InMemoryJobQueue) -> None:
        await queue.enqueue("discover-sets", {"user_id": 1})

        await queue.close()

        assert queue.closed is True
        assert await queue.next_job(timeout=0) is None
        with pytest.raises(RuntimeError):
            await queue.enqueue("discover-sets", {"user_id": 2})
