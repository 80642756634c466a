"""AnalysisWorkerLoop — consumes queued analysis jobs.

Each cycle pops job ids from the Redis queue (when one is configured) and
then sweeps the job table for queued jobs nobody dispatched, e.g. because
the creating instance died before its background task ran. Running a job id
twice is harmless: the second claim fails and the worker returns early.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any

from intelgate.jobs.dispatch import RedisJobQueue
from intelgate.jobs.store import JobNotFound, JobStore
from intelgate.jobs.worker import JobWorker

logger = logging.getLogger(__name__)

_POP_BATCH = 10
_SWEEP_LIMIT = 20
_SWEEP_MIN_AGE_SECONDS = 10


class AnalysisWorkerLoop:
    def __init__(
        self,
        worker: JobWorker,
        jobs: JobStore,
        queue: RedisJobQueue | None = None,
        interval_seconds: float = 30.0,
        concurrency: int = 4,
    ) -> None:
        self._worker = worker
        self._jobs = jobs
        self._queue = queue
        self._interval = interval_seconds
        self._semaphore = asyncio.Semaphore(concurrency)

        self.cycles: int = 0
        self.jobs_popped: int = 0
        self.jobs_swept: int = 0
        self.errors: int = 0
        self.last_cycle_at: str | None = None

    async def _run_job(self, job_id: str) -> None:
        async with self._semaphore:
            try:
                await self._worker.run(job_id)
            except JobNotFound:
                logger.warning("[analysis_worker] job %s vanished before it ran", job_id)
            except Exception:
                self.errors += 1
                logger.error("[analysis_worker] job %s crashed", job_id, exc_info=True)

    async def run_once(self, sweep: bool = True) -> int:
        """One pop (+ sweep) cycle. Returns the number of job ids handled."""
        job_ids: list[str] = []
        if self._queue is not None:
            try:
                popped = await self._queue.pop(_POP_BATCH)
            except Exception:
                self.errors += 1
                logger.warning("[analysis_worker] queue pop failed, relying on sweep", exc_info=True)
                popped = []
            self.jobs_popped += len(popped)
            job_ids.extend(popped)

        swept = (
            await self._jobs.list_queued(limit=_SWEEP_LIMIT, min_age_seconds=_SWEEP_MIN_AGE_SECONDS)
            if sweep else []
        )
        for record in swept:
            if record.id not in job_ids:
                job_ids.append(record.id)
                self.jobs_swept += 1

        if job_ids:
            await asyncio.gather(*(self._run_job(job_id) for job_id in job_ids))
        return len(job_ids)

    async def run(self) -> None:
        """Continuous loop: pop and sweep every interval."""
        logger.info("[analysis_worker] starting (interval=%.0fs, queue=%s)", self._interval, self._queue is not None)
        last_sweep = 0.0
        while True:
            try:
                cycle_start = datetime.now(timezone.utc)
                self.cycles += 1
                sweep = time.monotonic() - last_sweep >= self._interval
                if sweep:
                    last_sweep = time.monotonic()
                handled = await self.run_once(sweep=sweep)
                elapsed = (datetime.now(timezone.utc) - cycle_start).total_seconds()
                self.last_cycle_at = cycle_start.isoformat()
                if handled:
                    logger.info(
                        "[HEARTBEAT] analysis_worker cycle=%d handled=%d elapsed=%.1fs",
                        self.cycles, handled, elapsed,
                    )
            except Exception:
                self.errors += 1
                logger.error("[analysis_worker] fatal cycle error", exc_info=True)
            # Queue mode pops every second; the table sweep keeps its interval.
            await asyncio.sleep(1.0 if self._queue is not None else self._interval)

    def get_stats(self) -> dict[str, Any]:
        return {
            "cycles": self.cycles,
            "jobs_popped": self.jobs_popped,
            "jobs_swept": self.jobs_swept,
            "errors": self.errors,
            "last_cycle_at": self.last_cycle_at,
            "interval_seconds": self._interval,
            "worker": self._worker.get_stats(),
        }
