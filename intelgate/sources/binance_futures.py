"""Perpetual futures funding rate and open interest from Binance USD-M."""

from __future__ import annotations

from typing import Any

from intelgate.domain import DataKind
from intelgate.sources.http import HttpSourceAdapter

_BASE = "https://fapi.binance.com/fapi/v1"


class BinanceFuturesAdapter(HttpSourceAdapter):
    @property
    def kind(self) -> DataKind:
        return DataKind.DERIVATIVES

    @property
    def name(self) -> str:
        return "binance_futures"

    async def _fetch(self, subject: str) -> dict[str, Any]:
        pair = f"{subject}USDT"
        premium = await self._get_json(f"{_BASE}/premiumIndex", params={"symbol": pair})
        oi = await self._get_json(f"{_BASE}/openInterest", params={"symbol": pair})
        funding = float(premium.get("lastFundingRate") or 0.0)
        mark = float(premium.get("markPrice") or 0.0)
        open_interest = float(oi.get("openInterest") or 0.0)
        return {
            "symbol": subject,
            "pair": pair,
            "funding_rate": funding,
            "funding_rate_pct": round(funding * 100, 4),
            "mark_price": mark,
            "index_price": float(premium.get("indexPrice") or 0.0),
            "open_interest": open_interest,
            "open_interest_usd": round(open_interest * mark, 2),
            "next_funding_time": premium.get("nextFundingTime"),
        }
