from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from intelgate.db.database import make_session_factory
from intelgate.domain import JobStatus, ProviderKind
from intelgate.jobs.store import JobNotFound, JobStore


@pytest.mark.asyncio
async def test_create_returns_existing_in_flight_job(jobs) -> None:
    first, created = await jobs.create_or_get("btc", ProviderKind.ASYNC, "research")
    again, created_again = await jobs.create_or_get("BTC", ProviderKind.ASYNC, "research")

    assert created is True
    assert created_again is False
    assert again.id == first.id
    assert first.status is JobStatus.QUEUED
    assert first.subject == "BTC"


@pytest.mark.asyncio
async def test_new_job_allowed_once_previous_is_terminal(jobs) -> None:
    first = await jobs.create("BTC", ProviderKind.SYNC, "llm")
    await jobs.cancel(first.id)

    second = await jobs.create("BTC", ProviderKind.SYNC, "llm")
    assert second.id != first.id


@pytest.mark.asyncio
async def test_lifecycle_and_timestamps(jobs, clock) -> None:
    job = await jobs.create("ETH", ProviderKind.ASYNC, "research")
    clock.advance(5)
    running = await jobs.claim(job.id)
    assert running.status is JobStatus.RUNNING
    assert running.started_at == clock()

    progressed = await jobs.update_progress(job.id, "step 1/3", attempts=1, context_quality=80)
    assert progressed.progress_text == "step 1/3"
    assert progressed.attempts == 1
    assert progressed.context_quality == 80

    clock.advance(5)
    done = await jobs.complete(job.id, {"summary": "ok"})
    assert done.status is JobStatus.COMPLETED
    assert done.result == {"summary": "ok"}
    assert done.finished_at == clock()


@pytest.mark.asyncio
async def test_status_never_moves_backwards(jobs) -> None:
    job = await jobs.create("SOL", ProviderKind.ASYNC, "research")
    await jobs.claim(job.id)
    cancelled = await jobs.cancel(job.id)
    assert cancelled.status is JobStatus.CANCELLED

    # late writes from a worker that missed the cancel are no-ops
    assert (await jobs.complete(job.id, {"summary": "late"})).status is JobStatus.CANCELLED
    assert (await jobs.fail(job.id, "late")).status is JobStatus.CANCELLED
    assert await jobs.claim(job.id) is None
    after = await jobs.update_progress(job.id, "still going")
    assert after.progress_text == "cancelled"
    assert after.result is None


@pytest.mark.asyncio
async def test_complete_requires_running(jobs) -> None:
    job = await jobs.create("SOL", ProviderKind.ASYNC, "research")
    assert (await jobs.complete(job.id, {"x": 1})).status is JobStatus.QUEUED

    failed = await jobs.fail(job.id, "provider exploded")
    assert failed.status is JobStatus.FAILED
    assert failed.error == "provider exploded"


@pytest.mark.asyncio
async def test_unknown_id(jobs) -> None:
    assert await jobs.get("missing") is None
    with pytest.raises(JobNotFound):
        await jobs.cancel("missing")


@pytest.mark.asyncio
async def test_job_visible_from_another_instance(jobs, engine, tmp_path, clock) -> None:
    job = await jobs.create("BTC", ProviderKind.ASYNC, "research")

    other_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'intelgate.db'}")
    try:
        other = JobStore(session_factory=make_session_factory(other_engine), clock=clock)
        seen = await other.get(job.id)
        assert seen is not None
        assert seen.to_dict() == job.to_dict()
    finally:
        await other_engine.dispose()


@pytest.mark.asyncio
async def test_concurrent_creates_yield_one_job(jobs, session_factory, clock) -> None:
    other = JobStore(session_factory=session_factory, clock=clock)
    results = await asyncio.gather(
        jobs.create_or_get("BTC", ProviderKind.ASYNC, "research"),
        other.create_or_get("BTC", ProviderKind.ASYNC, "research"),
    )
    ids = {record.id for record, _ in results}
    assert len(ids) == 1
    assert sorted(created for _, created in results) == [False, True]


@pytest.mark.asyncio
async def test_list_queued_fail_stale_and_purge(jobs, clock, settings) -> None:
    old = await jobs.create("BTC", ProviderKind.ASYNC, "research")
    clock.advance(60)
    new = await jobs.create("ETH", ProviderKind.ASYNC, "research")

    assert [j.id for j in await jobs.list_queued(min_age_seconds=30)] == [old.id]
    assert [j.id for j in await jobs.list_queued()] == [old.id, new.id]

    await jobs.claim(new.id)
    clock.advance(1000)
    assert await jobs.fail_stale(900) == 2
    stale = await jobs.get(new.id)
    assert stale.status is JobStatus.FAILED
    assert "no progress" in stale.error

    assert await jobs.purge_expired() == 0
    clock.advance(settings.job_ttl_seconds + 1)
    assert await jobs.purge_expired() == 2
    assert await jobs.get(old.id) is None


@pytest.mark.asyncio
async def test_create_retries_when_race_winner_already_finished(jobs, session_factory, clock) -> None:
    winner = await jobs.create("BTC", ProviderKind.SYNC, "llm")

    class SlowCreator(JobStore):
        """Misses the winner on its first look; the winner finishes before its second."""

        lookups = 0

        async def find_active(self, subject, scope=None):  # noqa: ANN001
            self.lookups += 1
            if self.lookups == 1:
                return None
            if self.lookups == 2:
                await self.cancel(winner.id)
            return await super().find_active(subject, scope)

    loser = SlowCreator(session_factory=session_factory, clock=clock)
    record, created = await loser.create_or_get("BTC", ProviderKind.SYNC, "llm")

    assert created is True
    assert record.id != winner.id
    assert record.status is JobStatus.QUEUED
    assert (await jobs.find_active("BTC", None)).id == record.id
