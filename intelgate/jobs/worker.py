"""JobWorker — executes one analysis job from persistent state.

The worker is handed nothing but a job id. It claims the row, rebuilds the
context bundle from the cache, re-checks the gate and runs the provider the
job was created for. Re-invocation is safe: a job that is no longer queued
is returned untouched.

Cancellation is cooperative. The job row is re-read at these checkpoints:
after claim, after the context load, before each provider attempt, on every
provider progress report and before completing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from intelgate.analysis.base import AnalysisCancelled, AnalysisProvider, ProviderError
from intelgate.config import Settings
from intelgate.context import ContextAggregator, format_context_for_analysis
from intelgate.domain import JobRecord, JobStatus, ProviderKind
from intelgate.gate import gate
from intelgate.jobs.store import JobNotFound, JobStore
from intelgate.utils import backoff_delay

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class JobWorker:
    def __init__(
        self,
        jobs: JobStore,
        aggregator: ContextAggregator,
        providers: dict[str, AnalysisProvider],
        settings: Settings,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._jobs = jobs
        self._aggregator = aggregator
        self._providers = providers
        self._settings = settings
        self._sleep = sleep

        self.jobs_run: int = 0
        self.jobs_completed: int = 0
        self.jobs_failed: int = 0

    async def run(self, job_id: str) -> JobRecord:
        """Run *job_id* with the strategy stored on its record."""
        record = await self._jobs.get(job_id)
        if record is None:
            raise JobNotFound(job_id)
        if record.status is not JobStatus.QUEUED:
            logger.debug("[worker] %s is %s, nothing to do", job_id, record.status.value)
            return record
        if record.provider_kind is ProviderKind.SYNC:
            return await self.run_inline(job_id)
        return await self.run_async(job_id)

    async def run_inline(self, job_id: str) -> JobRecord:
        """Run within the caller's request under a hard wall-clock budget."""
        budget = self._settings.sync_budget_seconds
        try:
            return await asyncio.wait_for(self._execute(job_id), timeout=budget)
        except asyncio.TimeoutError:
            self.jobs_failed += 1
            return await self._jobs.fail(job_id, f"analysis exceeded the {budget:.0f}s inline budget")

    async def run_async(self, job_id: str) -> JobRecord:
        """Run detached from any request; progress is reported through the job row."""
        return await self._execute(job_id)

    # ── execution ──────────────────────────────────────────────────────

    async def _current(self, job_id: str) -> JobRecord:
        record = await self._jobs.get(job_id)
        if record is None:
            raise JobNotFound(job_id)
        return record

    async def _cancelled(self, job_id: str) -> bool:
        return await self._jobs.is_cancelled(job_id)

    def _progress_for(self, job_id: str):
        async def report(text: str) -> None:
            if await self._cancelled(job_id):
                raise AnalysisCancelled(job_id)
            await self._jobs.update_progress(job_id, text)

        return report

    async def _execute(self, job_id: str) -> JobRecord:
        claimed = await self._jobs.claim(job_id)
        if claimed is None:
            return await self._current(job_id)
        self.jobs_run += 1
        logger.info("[worker] running %s for %s via %s", job_id, claimed.subject, claimed.provider_name)

        try:
            return await self._process(job_id, claimed)
        except Exception as exc:
            logger.exception("[worker] %s crashed outside the provider call", job_id)
            self.jobs_failed += 1
            return await self._jobs.fail(job_id, f"{type(exc).__name__}: {exc}")

    async def _process(self, job_id: str, claimed: JobRecord) -> JobRecord:
        if await self._cancelled(job_id):
            return await self._current(job_id)

        provider = self._providers.get(claimed.provider_name)
        if provider is None:
            self.jobs_failed += 1
            return await self._jobs.fail(job_id, f"no analysis provider named {claimed.provider_name!r}")

        bundle = await self._aggregator.aggregate(claimed.subject, claimed.scope or None)
        await self._jobs.update_progress(job_id, "context loaded", context_quality=bundle.aggregate_quality)
        if await self._cancelled(job_id):
            return await self._current(job_id)

        if not gate(bundle.aggregate_quality, self._settings.gate_threshold):
            self.jobs_failed += 1
            missing = ", ".join(k.value for k in bundle.missing_kinds) or "-"
            return await self._jobs.fail(
                job_id,
                f"insufficient data quality: {bundle.aggregate_quality} < "
                f"{self._settings.gate_threshold} (missing: {missing})",
            )

        context_text = format_context_for_analysis(bundle)
        max_attempts = self._settings.worker_max_retries + 1
        result: dict[str, Any] | None = None

        for attempt in range(1, max_attempts + 1):
            if await self._cancelled(job_id):
                return await self._current(job_id)
            await self._jobs.update_progress(
                job_id, f"analysis attempt {attempt}/{max_attempts}", attempts=attempt,
            )
            try:
                result = await provider.analyze(
                    claimed.subject, context_text, bundle, progress=self._progress_for(job_id),
                )
                break
            except AnalysisCancelled:
                logger.info("[worker] %s stopped at a cancellation checkpoint", job_id)
                return await self._current(job_id)
            except ProviderError as exc:
                if not exc.transient or attempt == max_attempts:
                    self.jobs_failed += 1
                    return await self._jobs.fail(
                        job_id, f"{provider.name} failed after {attempt} attempt(s): {exc}",
                    )
                delay = backoff_delay(attempt, base_delay=self._settings.worker_backoff_base)
                logger.warning(
                    "[worker] %s attempt %d/%d failed: %s, retrying in %.1fs",
                    job_id, attempt, max_attempts, exc, delay,
                )
                await self._jobs.update_progress(job_id, f"retrying in {delay:.1f}s after: {exc}")
                await self._sleep(delay)
            except Exception as exc:
                logger.exception("[worker] %s provider %s crashed", job_id, provider.name)
                self.jobs_failed += 1
                return await self._jobs.fail(job_id, f"{type(exc).__name__}: {exc}")

        if await self._cancelled(job_id):
            return await self._current(job_id)
        record = await self._jobs.complete(job_id, result or {})
        if record.status is JobStatus.COMPLETED:
            self.jobs_completed += 1
            logger.info("[worker] %s completed for %s", job_id, claimed.subject)
        return record

    def get_stats(self) -> dict[str, Any]:
        return {
            "jobs_run": self.jobs_run,
            "jobs_completed": self.jobs_completed,
            "jobs_failed": self.jobs_failed,
            "providers": sorted(self._providers),
        }
