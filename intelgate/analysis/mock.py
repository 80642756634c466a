"""MockAnalysisProvider — deterministic analysis without LLM calls.

Derives an outlook from whatever market/sentiment numbers the bundle holds,
so demos and tests get plausible, repeatable results. Can be told to fail
the first N calls to exercise the worker's retry path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from intelgate.analysis.base import AnalysisProvider, ProgressCallback, ProviderError, no_progress
from intelgate.domain import ContextBundle, DataKind, ProviderKind

logger = logging.getLogger(__name__)


def _number(payload: Any, key: str) -> float | None:
    if isinstance(payload, dict):
        try:
            return float(payload[key])
        except (KeyError, TypeError, ValueError):
            return None
    return None


class MockAnalysisProvider(AnalysisProvider):
    def __init__(
        self,
        kind: ProviderKind = ProviderKind.SYNC,
        delay: float = 0.0,
        steps: int = 3,
        fail_times: int = 0,
        transient: bool = True,
        name: str | None = None,
    ) -> None:
        self.kind = ProviderKind(kind)
        self.name = name or f"mock-{self.kind.value}"
        self._delay = delay
        self._steps = max(1, steps)
        self._fail_times = fail_times
        self._transient = transient
        self.calls = 0

    async def analyze(
        self,
        subject: str,
        context_text: str,
        bundle: ContextBundle,
        progress: ProgressCallback = no_progress,
    ) -> dict[str, Any]:
        self.calls += 1
        for step in range(1, self._steps + 1):
            await progress(f"mock analysis step {step}/{self._steps}")
            if self._delay:
                await asyncio.sleep(self._delay / self._steps)

        if self.calls <= self._fail_times:
            raise ProviderError(f"mock failure {self.calls}/{self._fail_times}", transient=self._transient)

        market = bundle.per_kind.get(DataKind.MARKET_DATA)
        sentiment = bundle.per_kind.get(DataKind.SENTIMENT)
        change = _number(market.value, "change_24h") if market else None
        fear_greed = _number(sentiment.value, "fear_greed_value") if sentiment else None

        score = 0.0
        if change is not None:
            score += max(-1.0, min(1.0, change / 5))
        if fear_greed is not None:
            score += (fear_greed - 50) / 50
        outlook = "bullish" if score > 0.3 else "bearish" if score < -0.3 else "neutral"

        points = [f"{kind.value} available" for kind in bundle.available_kinds]
        if bundle.missing_kinds:
            points.append("missing: " + ", ".join(k.value for k in bundle.missing_kinds))
        return {
            "summary": (
                f"{subject} looks {outlook} on {len(bundle.per_kind)} data sources "
                f"(quality {bundle.aggregate_quality}%)."
            ),
            "outlook": outlook,
            "confidence": bundle.aggregate_quality,
            "key_points": points,
            "model": self.name,
            "data_quality": bundle.aggregate_quality,
        }
