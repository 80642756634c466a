"""Builds the kind → adapter map used by the phase collector."""

from __future__ import annotations

import logging

import httpx

from intelgate.config import Settings
from intelgate.domain import DataKind
from intelgate.sources.base import SourceAdapter
from intelgate.utils import RateLimiter

logger = logging.getLogger(__name__)


def build_adapters(
    settings: Settings,
    mock: bool = False,
    client: httpx.AsyncClient | None = None,
) -> dict[DataKind, SourceAdapter]:
    """One adapter per data-kind.

    In mock mode every kind uses ``MockSourceAdapter``. Real adapters share
    one HTTP client; the two CoinGecko adapters share one rate limiter.
    """
    if mock:
        from intelgate.sources.mock import MockSourceAdapter

        adapters: dict[DataKind, SourceAdapter] = {kind: MockSourceAdapter(kind) for kind in DataKind}
        logger.info("Mock mode: registered %d source adapters", len(adapters))
        return adapters

    from intelgate.sources.binance_futures import BinanceFuturesAdapter
    from intelgate.sources.blockchain import BlockchainStatsAdapter
    from intelgate.sources.coingecko import CoinGeckoMarketAdapter, CoinGeckoTechnicalAdapter
    from intelgate.sources.defillama import DefiLlamaAdapter
    from intelgate.sources.fear_greed import FearGreedAdapter
    from intelgate.sources.news_rss import NewsRSSAdapter

    cg_limiter = RateLimiter(max_calls=settings.coingecko_calls_per_minute, period=60)
    adapters = {
        DataKind.MARKET_DATA: CoinGeckoMarketAdapter(
            base_url=settings.coingecko_base_url, client=client, limiter=cg_limiter,
        ),
        DataKind.TECHNICAL: CoinGeckoTechnicalAdapter(
            base_url=settings.coingecko_base_url, client=client, limiter=cg_limiter,
        ),
        DataKind.SENTIMENT: FearGreedAdapter(client=client),
        DataKind.NEWS: NewsRSSAdapter(feeds=settings.news_feeds, client=client),
        DataKind.ON_CHAIN: BlockchainStatsAdapter(client=client),
        DataKind.DERIVATIVES: BinanceFuturesAdapter(client=client),
        DataKind.DEFI: DefiLlamaAdapter(client=client),
    }
    logger.info("Registered %d source adapters", len(adapters))
    return adapters


async def close_adapters(adapters: dict[DataKind, SourceAdapter]) -> None:
    for adapter in adapters.values():
        close = getattr(adapter, "close", None)
        if close is not None:
            await close()
