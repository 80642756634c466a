"""Shared plumbing for adapters that talk JSON over HTTP."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from intelgate.sources.base import SourceAdapter, SourceUnavailable
from intelgate.utils import RateLimiter

logger = logging.getLogger(__name__)

_HEADERS = {
    "User-Agent": "intelgate/0.1 (+https://github.com/intelgate)",
    "Accept": "application/json",
}

# Ticker → CoinGecko coin id.
COINGECKO_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "ADA": "cardano",
    "AVAX": "avalanche-2",
    "LINK": "chainlink",
    "DOT": "polkadot",
    "MATIC": "matic-network",
    "BNB": "binancecoin",
    "LTC": "litecoin",
}


def coin_id(subject: str) -> str:
    return COINGECKO_IDS.get(subject, subject.lower())


class HttpSourceAdapter(SourceAdapter):
    """Adapter base holding an ``httpx.AsyncClient`` and optional rate limiter.

    The client is shared across adapters when passed in; otherwise each
    adapter lazily opens its own.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        super().__init__()
        self._client = client
        self._owns_client = client is None
        self._limiter = limiter

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(headers=_HEADERS, follow_redirects=True)
        return self._client

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        client = self._get_client()
        if self._limiter is not None:
            async with self._limiter:
                resp = await client.get(url, params=params)
        else:
            resp = await client.get(url, params=params)
        if resp.status_code == 429:
            raise SourceUnavailable(f"{self.name} rate limited")
        resp.raise_for_status()
        return resp.json()

    async def _get_text(self, url: str) -> str:
        resp = await self._get_client().get(url)
        resp.raise_for_status()
        return resp.text

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
