"""Ways to hand a queued async job to a worker.

``TaskDispatcher`` runs the job as a fire-and-forget task in this process.
``RedisJobQueue`` pushes the job id onto a Redis list for an
``AnalysisWorkerLoop`` in any process. Either way the job row already exists
in ``queued`` state, so a lost dispatch is picked up by the worker sweep.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import redis.asyncio as aioredis

from intelgate.config import get_settings
from intelgate.jobs.worker import JobWorker

logger = logging.getLogger(__name__)

_KEY_STATS_PUSHED = "stats:pushed"
_KEY_STATS_POPPED = "stats:popped"


class Dispatcher(Protocol):
    async def dispatch(self, job_id: str) -> None: ...


class TaskDispatcher:
    """In-process background execution with ``asyncio.create_task``."""

    def __init__(self, worker: JobWorker) -> None:
        self._worker = worker
        self._tasks: set[asyncio.Task] = set()

    async def dispatch(self, job_id: str) -> None:
        task = asyncio.create_task(self._run(job_id), name=f"analysis-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("[dispatch] started task for %s", job_id)

    async def _run(self, job_id: str) -> None:
        try:
            await self._worker.run(job_id)
        except Exception:
            logger.error("[dispatch] job %s crashed outside the provider", job_id, exc_info=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every task started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)


class RedisJobQueue:
    """Job ids on a Redis list: RPUSH to dispatch, LPOP to consume."""

    def __init__(
        self,
        redis_url: str | None = None,
        key: str | None = None,
        client: Any = None,
    ) -> None:
        settings = get_settings()
        self._key = key or settings.job_queue_key
        self._redis = client if client is not None else aioredis.from_url(
            redis_url or settings.redis_url, decode_responses=True,
        )

    async def dispatch(self, job_id: str) -> None:
        await self.push([job_id])

    async def push(self, job_ids: list[str]) -> int:
        """RPUSH job ids onto the queue. Returns count pushed."""
        if not job_ids:
            return 0
        pipe = self._redis.pipeline()
        for job_id in job_ids:
            pipe.rpush(self._key, job_id)
        pipe.incrby(f"{self._key}:{_KEY_STATS_PUSHED}", len(job_ids))
        await pipe.execute()
        logger.debug("[queue] pushed %d job ids", len(job_ids))
        return len(job_ids)

    async def pop(self, batch_size: int = 10) -> list[str]:
        """LPOP up to *batch_size* job ids."""
        pipe = self._redis.pipeline()
        for _ in range(batch_size):
            pipe.lpop(self._key)
        results = await pipe.execute()
        job_ids = [r for r in results if r is not None]
        if job_ids:
            await self._redis.incrby(f"{self._key}:{_KEY_STATS_POPPED}", len(job_ids))
        return job_ids

    async def get_stats(self) -> dict[str, Any]:
        pipe = self._redis.pipeline()
        pipe.llen(self._key)
        pipe.get(f"{self._key}:{_KEY_STATS_PUSHED}")
        pipe.get(f"{self._key}:{_KEY_STATS_POPPED}")
        length, pushed, popped = await pipe.execute()
        return {
            "queue_length": length,
            "total_pushed": int(pushed or 0),
            "total_popped": int(popped or 0),
        }

    async def close(self) -> None:
        await self._redis.aclose()
