"""Poller — read-only view of job progress for callers."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

from intelgate.domain import JobRecord
from intelgate.jobs.store import JobStore

logger = logging.getLogger(__name__)


@dataclass
class PollResult:
    """Outcome of waiting on a job.

    ``timed_out`` means the poller gave up, not that the job failed: the job
    may still be running and a later poll can still see it complete.
    """

    record: JobRecord | None
    timed_out: bool = False

    @property
    def status(self) -> str:
        if self.timed_out:
            return "unknown"
        return self.record.status.value if self.record else "not_found"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": self.status, "timed_out": self.timed_out}
        if self.record is not None:
            out["job"] = self.record.to_dict()
        if self.timed_out:
            out["message"] = "still in progress, poll again"
        return out


class Poller:
    def __init__(self, jobs: JobStore) -> None:
        self._jobs = jobs

    async def poll(self, job_id: str) -> JobRecord | None:
        return await self._jobs.get(job_id)

    async def wait(self, job_id: str, timeout: float = 180.0, interval: float = 5.0) -> PollResult:
        """Poll until the job is terminal or *timeout* seconds pass."""
        deadline = time.monotonic() + timeout
        while True:
            record = await self._jobs.get(job_id)
            if record is None or record.terminal:
                return PollResult(record=record)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.info("[poller] gave up on %s after %.0fs (status=%s)", job_id, timeout, record.status.value)
                return PollResult(record=record, timed_out=True)
            await asyncio.sleep(min(interval, remaining))

    async def cancel(self, job_id: str) -> JobRecord:
        return await self._jobs.cancel(job_id)
