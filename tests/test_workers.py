from __future__ import annotations

import pytest

from fakes import FIVE_KINDS, FakeRedis
from intelgate.analysis.mock import MockAnalysisProvider
from intelgate.context import ContextAggregator
from intelgate.domain import DataKind, JobStatus, ProviderKind
from intelgate.jobs.dispatch import RedisJobQueue, TaskDispatcher
from intelgate.jobs.worker import JobWorker
from intelgate.workers.analysis_worker import AnalysisWorkerLoop
from intelgate.workers.housekeeping_worker import HousekeepingWorker


@pytest.fixture
def provider() -> MockAnalysisProvider:
    return MockAnalysisProvider(kind=ProviderKind.ASYNC)


@pytest.fixture
def worker(cache, jobs, clock, settings, provider) -> JobWorker:
    return JobWorker(jobs, ContextAggregator(cache, settings, clock=clock), {provider.name: provider}, settings)


async def _seed(cache) -> None:
    for kind in FIVE_KINDS:
        await cache.upsert("BTC", kind, {"kind": kind.value}, 100, ttl_seconds=600)
        await cache.upsert("ETH", kind, {"kind": kind.value}, 100, ttl_seconds=600)


@pytest.mark.asyncio
async def test_redis_queue_push_pop_and_stats() -> None:
    redis = FakeRedis()
    queue = RedisJobQueue(key="test:jobs", client=redis)

    await queue.dispatch("a")
    await queue.push(["b", "c"])

    assert await queue.pop(2) == ["a", "b"]
    stats = await queue.get_stats()
    assert stats == {"queue_length": 1, "total_pushed": 3, "total_popped": 2}

    await queue.close()
    assert redis.closed is True


@pytest.mark.asyncio
async def test_task_dispatcher_runs_job_in_background(cache, jobs, worker, provider) -> None:
    await _seed(cache)
    job = await jobs.create("BTC", provider.kind, provider.name)
    dispatcher = TaskDispatcher(worker)

    await dispatcher.dispatch(job.id)
    await dispatcher.drain()

    assert dispatcher.pending == 0
    assert (await jobs.get(job.id)).status is JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_worker_loop_consumes_queue_and_sweeps_orphans(cache, jobs, worker, provider, clock) -> None:
    await _seed(cache)
    queued = await jobs.create("BTC", provider.kind, provider.name)
    orphan = await jobs.create("ETH", provider.kind, provider.name)
    queue = RedisJobQueue(key="test:jobs", client=FakeRedis())
    await queue.dispatch(queued.id)
    clock.advance(30)

    loop = AnalysisWorkerLoop(worker, jobs, queue=queue)
    handled = await loop.run_once()

    assert handled == 2
    assert loop.jobs_popped == 1
    assert loop.jobs_swept == 1
    assert (await jobs.get(queued.id)).status is JobStatus.COMPLETED
    assert (await jobs.get(orphan.id)).status is JobStatus.COMPLETED

    # a duplicate delivery of a finished job is harmless
    await queue.dispatch(queued.id)
    assert await loop.run_once() == 1
    assert provider.calls == 2


@pytest.mark.asyncio
async def test_housekeeping_fails_stale_and_purges(cache, jobs, clock, provider) -> None:
    stuck = await jobs.create("BTC", provider.kind, provider.name)
    await jobs.claim(stuck.id)
    await cache.upsert("BTC", DataKind.MARKET_DATA, {"price": 1}, 100, ttl_seconds=60)

    hk = HousekeepingWorker(cache, jobs, stale_after_seconds=900)
    clock.advance(901)
    counts = await hk.run_once()

    assert counts == {"stale_jobs_failed": 1, "jobs_purged": 0, "cache_purged": 1}
    assert (await jobs.get(stuck.id)).status is JobStatus.FAILED
    assert hk.get_stats()["jobs_failed_stale"] == 1
