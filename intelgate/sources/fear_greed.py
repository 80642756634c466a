"""Crypto Fear & Greed index (alternative.me) as the sentiment source."""

from __future__ import annotations

from typing import Any

from intelgate.domain import DataKind
from intelgate.sources.base import SourceUnavailable
from intelgate.sources.http import HttpSourceAdapter

_FNG_URL = "https://api.alternative.me/fng/"


class FearGreedAdapter(HttpSourceAdapter):
    """Market-wide index, so every subject receives the same reading."""

    @property
    def kind(self) -> DataKind:
        return DataKind.SENTIMENT

    @property
    def name(self) -> str:
        return "fear_greed"

    async def _fetch(self, subject: str) -> dict[str, Any]:
        data = await self._get_json(_FNG_URL, params={"limit": 2})
        points = (data or {}).get("data") or []
        if not points:
            raise SourceUnavailable("fear & greed index returned no data")
        latest = points[0]
        value = int(latest.get("value", 0))
        out: dict[str, Any] = {
            "symbol": subject,
            "fear_greed_value": value,
            "classification": latest.get("value_classification"),
            "timestamp": latest.get("timestamp"),
        }
        if len(points) > 1:
            out["change_1d"] = value - int(points[1].get("value", value))
        return out
