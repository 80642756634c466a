"""PhaseCollector — fans out source adapters for one named phase.

Every kind in the phase is fetched concurrently under its own timeout.
Successes are scored and upserted into the cache; failures write nothing, so
a previously cached value stays readable. The returned report is
diagnostics only; the cache is the authoritative state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from intelgate.cache.quality import score_payload, weighted_presence
from intelgate.cache.store import CacheStore
from intelgate.config import Settings
from intelgate.domain import (
    DataKind,
    PhaseKindReport,
    PhaseReport,
    SourceOutcome,
    normalize_subject,
)
from intelgate.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


class PhaseCollector:
    def __init__(
        self,
        cache: CacheStore,
        adapters: dict[DataKind, SourceAdapter],
        settings: Settings,
    ) -> None:
        self._cache = cache
        self._adapters = adapters
        self._settings = settings

    def phase_kinds(self, phase_name: str) -> list[DataKind]:
        try:
            return list(self._settings.phases[phase_name])
        except KeyError:
            raise KeyError(f"unknown phase {phase_name!r}") from None

    # ── one kind ───────────────────────────────────────────────────────

    async def _collect_kind(
        self,
        subject: str,
        kind: DataKind,
        scope: str | None,
        force: bool,
    ) -> PhaseKindReport:
        policy = self._settings.policy_for(kind)

        if not force:
            cached = await self._cache.get_fresh(
                subject, kind, scope, max_age_seconds=policy.collection_ttl_seconds,
            )
            if cached is not None:
                return PhaseKindReport(
                    kind=kind,
                    outcome=SourceOutcome.SUCCESS,
                    quality=cached.quality_score,
                    from_cache=True,
                )

        adapter = self._adapters.get(kind)
        if adapter is None:
            return PhaseKindReport(kind=kind, outcome=SourceOutcome.ERROR, error="no adapter registered")

        result = await adapter.fetch(subject, timeout=policy.timeout_seconds)
        if not result.ok:
            return PhaseKindReport(
                kind=kind, outcome=result.outcome, latency_ms=result.latency_ms, error=result.error,
            )

        quality = score_payload(result.value, policy.expected_fields)
        # Rows live until the analysis ceiling; the collection TTL only decides refetching.
        ttl = max(policy.collection_ttl_seconds, self._settings.analysis_max_age(kind))
        try:
            await self._cache.upsert(subject, kind, result.value, quality, ttl, scope=scope)
        except Exception as exc:
            logger.exception("[collector] cache write failed for %s/%s", subject, kind.value)
            return PhaseKindReport(
                kind=kind,
                outcome=SourceOutcome.ERROR,
                latency_ms=result.latency_ms,
                error=f"cache write failed: {exc}",
            )
        return PhaseKindReport(
            kind=kind, outcome=SourceOutcome.SUCCESS, latency_ms=result.latency_ms, quality=quality,
        )

    # ── one phase ──────────────────────────────────────────────────────

    async def collect_phase(
        self,
        subject: str,
        phase_name: str,
        scope: str | None = None,
        force: bool = False,
    ) -> PhaseReport:
        """Fetch every kind of *phase_name* concurrently and wait for all to settle."""
        subject = normalize_subject(subject)
        kinds = self.phase_kinds(phase_name)
        logger.info("[collector] %s phase=%s kinds=%s", subject, phase_name, ",".join(k.value for k in kinds))

        settled = await asyncio.gather(
            *(self._collect_kind(subject, kind, scope, force) for kind in kinds),
            return_exceptions=True,
        )
        results: list[PhaseKindReport] = []
        for kind, item in zip(kinds, settled):
            if isinstance(item, BaseException):
                if isinstance(item, asyncio.CancelledError):
                    raise item
                logger.error("[collector] %s/%s crashed: %s", subject, kind.value, item)
                item = PhaseKindReport(kind=kind, outcome=SourceOutcome.ERROR, error=str(item))
            results.append(item)

        report = PhaseReport(phase=phase_name, subject=subject, results=results)
        weights = {k: self._settings.policy_for(k).weight for k in kinds}
        report.round_quality = weighted_presence(report.succeeded, weights, kinds)
        logger.info(
            "[collector] %s phase=%s ok=%d failed=%d quality=%d",
            subject, phase_name, len(report.succeeded), len(report.failed), report.round_quality,
        )
        return report

    async def collect_phases(
        self,
        subject: str,
        phase_names: Iterable[str],
        scope: str | None = None,
        force: bool = False,
    ) -> list[PhaseReport]:
        """Run phases strictly in order; each settles before the next starts."""
        reports = []
        for phase in phase_names:
            reports.append(await self.collect_phase(subject, phase, scope=scope, force=force))
        return reports
