"""Mock adapters — plausible payloads for every data-kind without network calls."""

from __future__ import annotations

import asyncio
import random
from typing import Any

from intelgate.domain import DataKind
from intelgate.sources.base import SourceAdapter, SourceUnavailable

_BASE_PRICES = {"BTC": 64_000.0, "ETH": 3_100.0, "SOL": 145.0, "XRP": 0.52, "DOGE": 0.12}


def _mock_payload(kind: DataKind, subject: str, rng: random.Random) -> dict[str, Any]:
    price = _BASE_PRICES.get(subject, 10.0) * rng.uniform(0.97, 1.03)
    if kind is DataKind.MARKET_DATA:
        return {
            "symbol": subject,
            "price": round(price, 4),
            "change_24h": round(rng.uniform(-6, 6), 2),
            "volume_24h": round(price * rng.uniform(1e5, 5e5), 2),
            "market_cap": round(price * rng.uniform(1e7, 2e7), 2),
        }
    if kind is DataKind.TECHNICAL:
        rsi = round(rng.uniform(25, 75), 2)
        return {
            "symbol": subject,
            "rsi_14": rsi,
            "rsi_signal": "overbought" if rsi >= 70 else "oversold" if rsi <= 30 else "neutral",
            "sma_20": round(price * rng.uniform(0.97, 1.01), 4),
            "sma_50": round(price * rng.uniform(0.94, 1.02), 4),
            "trend": rng.choice(["bullish", "bearish", "neutral"]),
        }
    if kind is DataKind.SENTIMENT:
        value = rng.randint(10, 90)
        label = "Extreme Fear" if value < 25 else "Fear" if value < 45 else "Neutral" if value < 55 else "Greed"
        return {"symbol": subject, "fear_greed_value": value, "classification": label}
    if kind is DataKind.NEWS:
        articles = [
            {"title": f"{subject} {headline}", "summary": "", "url": None}
            for headline in rng.sample(
                ["ETF flows accelerate", "miners rotate reserves", "options open interest hits record",
                 "exchange balances slide", "regulator comments on custody rules"],
                k=3,
            )
        ]
        return {"symbol": subject, "articles": articles, "article_count": len(articles)}
    if kind is DataKind.ON_CHAIN:
        return {
            "symbol": subject,
            "hash_rate": round(rng.uniform(5e8, 7e8), 1),
            "n_tx": rng.randint(250_000, 550_000),
            "mempool_size": rng.randint(5_000, 150_000),
        }
    if kind is DataKind.DERIVATIVES:
        oi = rng.uniform(5e4, 1e5)
        return {
            "symbol": subject,
            "funding_rate": round(rng.uniform(-0.0003, 0.0005), 6),
            "open_interest": round(oi, 2),
            "mark_price": round(price, 4),
        }
    return {"symbol": subject, "chain": subject.title(), "tvl": round(rng.uniform(1e8, 6e10), 2)}


class MockSourceAdapter(SourceAdapter):
    """Deterministic per (subject, kind) unless *seed* is overridden.

    *fail* raises inside ``_fetch`` (reported as ``error``), *delay* sleeps
    before answering (lets callers exercise timeouts) and *drop_fields*
    removes keys to simulate a partially degraded provider.
    """

    def __init__(
        self,
        kind: DataKind,
        delay: float = 0.0,
        fail: bool = False,
        drop_fields: list[str] | None = None,
        seed: int | None = None,
    ) -> None:
        super().__init__()
        self._kind = kind
        self._delay = delay
        self._fail = fail
        self._drop = set(drop_fields or [])
        self._seed = seed

    @property
    def kind(self) -> DataKind:
        return self._kind

    @property
    def name(self) -> str:
        return f"mock_{self._kind.value}"

    async def _fetch(self, subject: str) -> dict[str, Any]:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._fail:
            raise SourceUnavailable(f"mock {self._kind.value} provider down")
        seed = self._seed if self._seed is not None else f"{subject}:{self._kind.value}"
        payload = _mock_payload(self._kind, subject, random.Random(seed))
        for key in self._drop:
            payload.pop(key, None)
        return payload
