"""Context aggregation — turns cached rows into one bundle for analysis.

``aggregate()`` is a pure function of the cache state (plus the clock): it
makes no network calls and can be exercised against any object exposing
``get_fresh(subject, kind, scope, max_age_seconds=...)``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Callable, Protocol

from intelgate.cache.quality import weighted_presence
from intelgate.config import Settings
from intelgate.domain import (
    CacheEntry,
    ContextBundle,
    DataKind,
    KindSnapshot,
    normalize_scope,
    normalize_subject,
)
from intelgate.utils import format_age, utc_now

logger = logging.getLogger(__name__)

KIND_TITLES = {
    DataKind.MARKET_DATA: "Market Data",
    DataKind.TECHNICAL: "Technical Indicators",
    DataKind.SENTIMENT: "Sentiment",
    DataKind.NEWS: "Recent News",
    DataKind.ON_CHAIN: "On-Chain Metrics",
    DataKind.DERIVATIVES: "Derivatives",
    DataKind.DEFI: "DeFi Metrics",
}

_MAX_PAYLOAD_CHARS = 2000


class FreshReader(Protocol):
    async def get_fresh(
        self,
        subject: str,
        kind: DataKind,
        scope: str | None = None,
        max_age_seconds: float | None = None,
    ) -> CacheEntry | None: ...


class ContextAggregator:
    def __init__(
        self,
        cache: FreshReader,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._cache = cache
        self._settings = settings
        self._clock = clock

    async def aggregate(self, subject: str, scope: str | None = None) -> ContextBundle:
        """Read every expected kind under the analysis freshness ceiling."""
        subject = normalize_subject(subject)
        expected = self._settings.expected_kinds()
        entries = await asyncio.gather(*(
            self._cache.get_fresh(
                subject, kind, scope, max_age_seconds=self._settings.analysis_max_age(kind),
            )
            for kind in expected
        ))

        now = self._clock()
        per_kind: dict[DataKind, KindSnapshot] = {}
        for kind, entry in zip(expected, entries):
            if entry is None:
                continue
            per_kind[kind] = KindSnapshot(
                value=entry.value,
                age_ms=entry.age_ms(now),
                quality_score=entry.quality_score,
            )

        missing = [k for k in expected if k not in per_kind]
        quality = weighted_presence(per_kind, self._settings.weights(), expected)
        avg_entry = (
            round(sum(s.quality_score for s in per_kind.values()) / len(per_kind)) if per_kind else 0
        )
        logger.info(
            "[context] %s quality=%d present=%d/%d missing=%s",
            subject, quality, len(per_kind), len(expected), ",".join(k.value for k in missing) or "-",
        )
        return ContextBundle(
            subject=subject,
            scope=normalize_scope(scope),
            per_kind=per_kind,
            aggregate_quality=quality,
            missing_kinds=missing,
            average_entry_quality=avg_entry,
            generated_at=now,
        )


def format_context_for_analysis(bundle: ContextBundle) -> str:
    """Markdown prompt section with one block per available kind."""
    lines = [
        f"# Analysis Context for {bundle.subject}",
        "",
        f"**Data Quality**: {bundle.aggregate_quality}% "
        f"({len(bundle.per_kind)}/{len(bundle.per_kind) + len(bundle.missing_kinds)} sources)",
        f"**Available Data**: {', '.join(k.value for k in bundle.available_kinds) or 'none'}",
        f"**Generated**: {bundle.generated_at.isoformat()}",
        "",
    ]
    for kind, snap in bundle.per_kind.items():
        payload = json.dumps(snap.value, sort_keys=True, default=str)
        if len(payload) > _MAX_PAYLOAD_CHARS:
            payload = payload[:_MAX_PAYLOAD_CHARS] + "..."
        lines.append(f"## {KIND_TITLES.get(kind, kind.value)}")
        lines.append(f"- age: {format_age(snap.age_ms / 1000)}, stored quality: {snap.quality_score}/100")
        lines.append(f"- data: {payload}")
        lines.append("")
    if bundle.missing_kinds:
        lines.append(f"**Missing Data**: {', '.join(k.value for k in bundle.missing_kinds)}")
    return "\n".join(lines).rstrip() + "\n"


def format_kind_for_analysis(bundle: ContextBundle, kind: DataKind) -> str:
    snap = bundle.per_kind[kind]
    return (
        f"{KIND_TITLES.get(kind, kind.value)} for {bundle.subject} "
        f"(age {format_age(snap.age_ms / 1000)}):\n"
        f"{json.dumps(snap.value, sort_keys=True, default=str)[:_MAX_PAYLOAD_CHARS]}"
    )
