"""CoinGecko adapters — spot market data and daily-close technical indicators."""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from intelgate.domain import DataKind
from intelgate.sources.base import SourceUnavailable
from intelgate.sources.http import HttpSourceAdapter, coin_id

logger = logging.getLogger(__name__)

_DEFAULT_BASE = "https://api.coingecko.com/api/v3"


class CoinGeckoMarketAdapter(HttpSourceAdapter):
    """Price, 24h change, volume and market cap from ``/coins/markets``."""

    def __init__(self, base_url: str = _DEFAULT_BASE, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._base_url = base_url.rstrip("/")

    @property
    def kind(self) -> DataKind:
        return DataKind.MARKET_DATA

    @property
    def name(self) -> str:
        return "coingecko_market"

    async def _fetch(self, subject: str) -> dict[str, Any]:
        rows = await self._get_json(
            f"{self._base_url}/coins/markets",
            params={"vs_currency": "usd", "ids": coin_id(subject)},
        )
        if not isinstance(rows, list) or not rows:
            raise SourceUnavailable(f"no market data for {subject}")
        row = rows[0]
        return {
            "symbol": subject,
            "price": row.get("current_price"),
            "change_24h": row.get("price_change_percentage_24h"),
            "volume_24h": row.get("total_volume"),
            "market_cap": row.get("market_cap"),
            "high_24h": row.get("high_24h"),
            "low_24h": row.get("low_24h"),
            "circulating_supply": row.get("circulating_supply"),
            "last_updated": row.get("last_updated"),
        }


def _rsi(closes: np.ndarray, period: int = 14) -> float | None:
    if len(closes) <= period:
        return None
    deltas = np.diff(closes)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)
    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    for g, l in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + g) / period
        avg_loss = (avg_loss * (period - 1) + l) / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return round(float(100 - 100 / (1 + rs)), 2)


def _sma(closes: np.ndarray, window: int) -> float | None:
    if len(closes) < window:
        return None
    return round(float(closes[-window:].mean()), 4)


def technical_snapshot(closes: list[float]) -> dict[str, Any]:
    """RSI(14), SMA(20/50) and a coarse trend label from daily closes."""
    arr = np.asarray(closes, dtype=float)
    rsi = _rsi(arr)
    sma_20 = _sma(arr, 20)
    sma_50 = _sma(arr, 50)
    last = float(arr[-1]) if len(arr) else None

    trend = None
    if last is not None and sma_20 is not None and sma_50 is not None:
        if last > sma_20 > sma_50:
            trend = "bullish"
        elif last < sma_20 < sma_50:
            trend = "bearish"
        else:
            trend = "neutral"

    rsi_signal = None
    if rsi is not None:
        rsi_signal = "overbought" if rsi >= 70 else "oversold" if rsi <= 30 else "neutral"

    return {
        "last_close": last,
        "rsi_14": rsi,
        "rsi_signal": rsi_signal,
        "sma_20": sma_20,
        "sma_50": sma_50,
        "trend": trend,
        "observations": int(len(arr)),
    }


class CoinGeckoTechnicalAdapter(HttpSourceAdapter):
    """Technical indicators computed from 90 days of daily closes."""

    def __init__(self, base_url: str = _DEFAULT_BASE, days: int = 90, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._base_url = base_url.rstrip("/")
        self._days = days

    @property
    def kind(self) -> DataKind:
        return DataKind.TECHNICAL

    @property
    def name(self) -> str:
        return "coingecko_technical"

    async def _fetch(self, subject: str) -> dict[str, Any]:
        data = await self._get_json(
            f"{self._base_url}/coins/{coin_id(subject)}/market_chart",
            params={"vs_currency": "usd", "days": self._days, "interval": "daily"},
        )
        prices = (data or {}).get("prices") or []
        closes = [p[1] for p in prices if isinstance(p, (list, tuple)) and len(p) >= 2]
        if not closes:
            raise SourceUnavailable(f"no price history for {subject}")
        snapshot = technical_snapshot(closes)
        snapshot["symbol"] = subject
        return snapshot
