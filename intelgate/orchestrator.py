"""Orchestrator — collect, gate, then create and run an analysis job.

    collecting → gated_pass → job_created → terminal
               → gated_fail

Every step reads and writes the shared stores, so the instance answering a
poll need not be the one that created the job. The gate only ever sees the
bundle built after all required phases have settled.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from intelgate.analysis.base import AnalysisProvider
from intelgate.collector import PhaseCollector
from intelgate.config import Settings
from intelgate.context import ContextAggregator
from intelgate.domain import (
    ContextBundle,
    DataKind,
    JobRecord,
    PhaseReport,
    ProviderKind,
    normalize_subject,
)
from intelgate.gate import gate
from intelgate.jobs.dispatch import Dispatcher
from intelgate.jobs.poller import Poller
from intelgate.jobs.store import JobStore
from intelgate.jobs.worker import JobWorker

logger = logging.getLogger(__name__)

__all__ = [
    "InsufficientData",
    "JobAccepted",
    "JobFinished",
    "OrchestrationState",
    "Orchestrator",
    "gate",
]


class OrchestrationState(str, enum.Enum):
    COLLECTING = "collecting"
    GATED_PASS = "gated_pass"
    GATED_FAIL = "gated_fail"
    JOB_CREATED = "job_created"
    TERMINAL = "terminal"


# ── outcomes ───────────────────────────────────────────────────────────

@dataclass
class InsufficientData:
    """The gate rejected the bundle; no job exists. Retry once more data is cached."""

    subject: str
    quality: int
    threshold: int
    missing: list[DataKind]
    phases: list[PhaseReport] = field(default_factory=list)
    state: OrchestrationState = OrchestrationState.GATED_FAIL

    def to_dict(self) -> dict[str, Any]:
        return {
            "insufficient_data": True,
            "subject": self.subject,
            "quality": self.quality,
            "threshold": self.threshold,
            "missing": [k.value for k in self.missing],
            "phases": [p.to_dict() for p in self.phases],
            "state": self.state.value,
        }


@dataclass
class JobAccepted:
    """A queued (or already in-flight) job the caller should poll."""

    job: JobRecord
    existing: bool = False
    quality: int | None = None
    state: OrchestrationState = OrchestrationState.JOB_CREATED

    def to_dict(self) -> dict[str, Any]:
        return {
            "insufficient_data": False,
            "job_id": self.job.id,
            "status": self.job.status.value,
            "existing": self.existing,
            "quality": self.quality,
            "state": self.state.value,
        }


@dataclass
class JobFinished:
    """A sync job that reached a terminal state within the request."""

    job: JobRecord
    quality: int | None = None
    state: OrchestrationState = OrchestrationState.TERMINAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "insufficient_data": False,
            "job_id": self.job.id,
            "status": self.job.status.value,
            "result": self.job.result,
            "error": self.job.error,
            "quality": self.quality,
            "state": self.state.value,
        }


AnalysisOutcome = InsufficientData | JobAccepted | JobFinished


# ── orchestrator ───────────────────────────────────────────────────────

class Orchestrator:
    def __init__(
        self,
        collector: PhaseCollector,
        aggregator: ContextAggregator,
        jobs: JobStore,
        worker: JobWorker,
        provider: AnalysisProvider,
        settings: Settings,
        dispatcher: Dispatcher | None = None,
    ) -> None:
        self._collector = collector
        self._aggregator = aggregator
        self._jobs = jobs
        self._worker = worker
        self._provider = provider
        self._settings = settings
        self._dispatcher = dispatcher
        self._poller = Poller(jobs)

    @property
    def poller(self) -> Poller:
        return self._poller

    async def collect_phase(
        self, subject: str, phase: str, scope: str | None = None, force: bool = False,
    ) -> PhaseReport:
        return await self._collector.collect_phase(subject, phase, scope=scope, force=force)

    async def get_context(self, subject: str, scope: str | None = None) -> ContextBundle:
        return await self._aggregator.aggregate(subject, scope)

    async def request_analysis(
        self,
        subject: str,
        scope: str | None = None,
        force: bool = False,
    ) -> AnalysisOutcome:
        subject = normalize_subject(subject)

        in_flight = await self._jobs.find_active(subject, scope)
        if in_flight is not None:
            logger.info("[orchestrator] %s already has job %s in flight", subject, in_flight.id)
            return JobAccepted(job=in_flight, existing=True, quality=in_flight.context_quality)

        logger.info("[orchestrator] %s state=%s", subject, OrchestrationState.COLLECTING.value)
        reports = await self._collector.collect_phases(
            subject, self._settings.required_phases, scope=scope, force=force,
        )
        bundle = await self._aggregator.aggregate(subject, scope)

        threshold = self._settings.gate_threshold
        if not gate(bundle.aggregate_quality, threshold):
            logger.info(
                "[orchestrator] %s state=%s quality=%d threshold=%d",
                subject, OrchestrationState.GATED_FAIL.value, bundle.aggregate_quality, threshold,
            )
            return InsufficientData(
                subject=subject,
                quality=bundle.aggregate_quality,
                threshold=threshold,
                missing=bundle.missing_kinds,
                phases=reports,
            )
        logger.info("[orchestrator] %s state=%s quality=%d", subject, OrchestrationState.GATED_PASS.value, bundle.aggregate_quality)

        record, created = await self._jobs.create_or_get(
            subject, self._provider.kind, self._provider.name, scope,
        )
        if not created:
            return JobAccepted(job=record, existing=True, quality=bundle.aggregate_quality)

        if self._provider.kind is ProviderKind.SYNC:
            final = await self._worker.run_inline(record.id)
            return JobFinished(job=final, quality=bundle.aggregate_quality)

        if self._dispatcher is not None:
            try:
                await self._dispatcher.dispatch(record.id)
            except Exception:
                logger.warning("[orchestrator] dispatch of %s failed, left for the sweep", record.id, exc_info=True)
        return JobAccepted(job=record, quality=bundle.aggregate_quality)

    async def poll_analysis(self, job_id: str) -> JobRecord | None:
        return await self._poller.poll(job_id)

    async def cancel_analysis(self, job_id: str) -> JobRecord:
        return await self._poller.cancel(job_id)
