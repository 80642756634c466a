from __future__ import annotations

import pytest

from intelgate.domain import DataKind


@pytest.mark.asyncio
async def test_upsert_then_get_fresh_roundtrip(cache) -> None:
    await cache.upsert("$btc ", DataKind.MARKET_DATA, {"price": 100}, 90, ttl_seconds=300)

    entry = await cache.get_fresh("BTC", DataKind.MARKET_DATA)
    assert entry is not None
    assert entry.subject == "BTC"
    assert entry.value == {"price": 100}
    assert entry.quality_score == 90


@pytest.mark.asyncio
async def test_entry_past_expiry_is_absent(cache, clock) -> None:
    await cache.upsert("BTC", DataKind.SENTIMENT, {"fear_greed_value": 40}, 100, ttl_seconds=60)

    clock.advance(60)
    assert await cache.get_fresh("BTC", DataKind.SENTIMENT) is not None
    clock.advance(1)
    assert await cache.get_fresh("BTC", DataKind.SENTIMENT) is None


@pytest.mark.asyncio
async def test_max_age_bound_is_independent_of_expiry(cache, clock) -> None:
    await cache.upsert("ETH", DataKind.NEWS, {"articles": ["a"]}, 80, ttl_seconds=600)
    clock.advance(301)

    assert await cache.get_fresh("ETH", DataKind.NEWS, max_age_seconds=300) is None
    assert await cache.get_fresh("ETH", DataKind.NEWS, max_age_seconds=600) is not None


@pytest.mark.asyncio
async def test_upsert_overwrites_last_write_wins(cache, clock) -> None:
    await cache.upsert("BTC", DataKind.MARKET_DATA, {"price": 1}, 50, ttl_seconds=300)
    clock.advance(10)
    await cache.upsert("BTC", DataKind.MARKET_DATA, {"price": 2}, 150, ttl_seconds=300)

    entry = await cache.get_fresh("BTC", DataKind.MARKET_DATA)
    assert entry.value == {"price": 2}
    assert entry.quality_score == 100
    assert entry.age_ms(clock()) == 0
    assert (await cache.stats())["total_entries"] == 1


@pytest.mark.asyncio
async def test_scopes_are_separate_keys(cache) -> None:
    await cache.upsert("BTC", DataKind.MARKET_DATA, {"price": 1}, 100, ttl_seconds=300)
    await cache.upsert("BTC", DataKind.MARKET_DATA, {"price": 9}, 100, ttl_seconds=300, scope="user-7")

    assert (await cache.get_fresh("BTC", DataKind.MARKET_DATA)).value == {"price": 1}
    assert (await cache.get_fresh("BTC", DataKind.MARKET_DATA, scope="user-7")).value == {"price": 9}


@pytest.mark.asyncio
async def test_non_positive_ttl_rejected(cache) -> None:
    with pytest.raises(ValueError):
        await cache.upsert("BTC", DataKind.MARKET_DATA, {"price": 1}, 100, ttl_seconds=0)


@pytest.mark.asyncio
async def test_get_many_invalidate_purge_and_stats(cache, clock) -> None:
    await cache.upsert("BTC", DataKind.MARKET_DATA, {"price": 1}, 100, ttl_seconds=300)
    await cache.upsert("BTC", DataKind.TECHNICAL, {"rsi_14": 55}, 80, ttl_seconds=30)
    await cache.upsert("SOL", DataKind.DEFI, {"tvl": 5}, 60, ttl_seconds=300)

    many = await cache.get_many("BTC", [DataKind.MARKET_DATA, DataKind.TECHNICAL, DataKind.NEWS])
    assert set(many) == {DataKind.MARKET_DATA, DataKind.TECHNICAL}

    stats = await cache.stats()
    assert stats["total_entries"] == 3
    assert stats["total_subjects"] == 2
    assert stats["average_quality"] == 80.0

    clock.advance(31)
    assert await cache.purge_expired() == 1
    assert await cache.invalidate("BTC") == 1
    assert await cache.get_fresh("BTC", DataKind.MARKET_DATA) is None
    assert (await cache.stats("SOL"))["kinds"] == ["defi"]
