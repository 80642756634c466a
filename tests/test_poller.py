from __future__ import annotations

import json

import pytest

from intelgate.domain import JobStatus, ProviderKind
from intelgate.jobs.poller import Poller


@pytest.mark.asyncio
async def test_polling_terminal_job_is_idempotent(jobs) -> None:
    job = await jobs.create("BTC", ProviderKind.ASYNC, "research")
    await jobs.claim(job.id)
    await jobs.complete(job.id, {"summary": "done", "key_points": ["a", "b"]})
    poller = Poller(jobs)

    first = json.dumps((await poller.poll(job.id)).to_dict(), sort_keys=True)
    second = json.dumps((await poller.poll(job.id)).to_dict(), sort_keys=True)

    assert first == second
    assert json.loads(first)["status"] == "completed"


@pytest.mark.asyncio
async def test_poll_unknown_job_returns_none(jobs) -> None:
    assert await Poller(jobs).poll("nope") is None


@pytest.mark.asyncio
async def test_wait_timeout_is_unknown_not_failed(jobs) -> None:
    job = await jobs.create("ETH", ProviderKind.ASYNC, "research")
    await jobs.claim(job.id)

    result = await Poller(jobs).wait(job.id, timeout=0.05, interval=0.01)

    assert result.timed_out is True
    assert result.status == "unknown"
    assert result.record.status is JobStatus.RUNNING
    assert result.to_dict()["message"] == "still in progress, poll again"

    # the job can still finish after the poller gave up
    await jobs.complete(job.id, {"summary": "late but fine"})
    assert (await Poller(jobs).poll(job.id)).status is JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_wait_returns_terminal_record(jobs) -> None:
    job = await jobs.create("SOL", ProviderKind.ASYNC, "research")
    await jobs.fail(job.id, "boom")

    result = await Poller(jobs).wait(job.id, timeout=1, interval=0.01)

    assert result.timed_out is False
    assert result.status == "failed"
    assert result.record.error == "boom"


@pytest.mark.asyncio
async def test_cancel_through_poller(jobs) -> None:
    job = await jobs.create("SOL", ProviderKind.ASYNC, "research")
    cancelled = await Poller(jobs).cancel(job.id)
    assert cancelled.status is JobStatus.CANCELLED
