"""HousekeepingWorker — expiry sweeps for both stores.

Every cycle: fail in-flight jobs whose worker stopped reporting progress,
delete terminal jobs past their result lifetime and delete cache rows past
``expires_at``. Reads already treat expired cache rows as absent; this only
reclaims space.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from intelgate.cache.store import CacheStore
from intelgate.jobs.store import JobStore

logger = logging.getLogger(__name__)


class HousekeepingWorker:
    def __init__(
        self,
        cache: CacheStore,
        jobs: JobStore,
        stale_after_seconds: float = 900,
        interval_seconds: float = 600,
    ) -> None:
        self._cache = cache
        self._jobs = jobs
        self._stale_after = stale_after_seconds
        self._interval = interval_seconds

        self.cycles: int = 0
        self.jobs_failed_stale: int = 0
        self.jobs_purged: int = 0
        self.cache_purged: int = 0
        self.errors: int = 0
        self.last_cycle_at: str | None = None

    async def run_once(self) -> dict[str, int]:
        stale = await self._jobs.fail_stale(self._stale_after)
        jobs_purged = await self._jobs.purge_expired()
        cache_purged = await self._cache.purge_expired()
        self.jobs_failed_stale += stale
        self.jobs_purged += jobs_purged
        self.cache_purged += cache_purged
        return {"stale_jobs_failed": stale, "jobs_purged": jobs_purged, "cache_purged": cache_purged}

    async def run(self) -> None:
        logger.info("[housekeeping] starting (interval=%.0fs)", self._interval)
        while True:
            try:
                self.cycles += 1
                counts = await self.run_once()
                self.last_cycle_at = datetime.now(timezone.utc).isoformat()
                logger.info(
                    "[HEARTBEAT] housekeeping cycle=%d stale=%d jobs_purged=%d cache_purged=%d",
                    self.cycles, counts["stale_jobs_failed"], counts["jobs_purged"], counts["cache_purged"],
                )
            except Exception:
                self.errors += 1
                logger.error("[housekeeping] cycle error", exc_info=True)
            await asyncio.sleep(self._interval)

    def get_stats(self) -> dict[str, Any]:
        return {
            "cycles": self.cycles,
            "jobs_failed_stale": self.jobs_failed_stale,
            "jobs_purged": self.jobs_purged,
            "cache_purged": self.cache_purged,
            "errors": self.errors,
            "last_cycle_at": self.last_cycle_at,
            "interval_seconds": self._interval,
        }
