from __future__ import annotations

import itertools
from datetime import timedelta

import pytest

from fakes import FIVE_KINDS, T0, FakeClock, five_kind_settings
from intelgate.context import ContextAggregator, format_context_for_analysis
from intelgate.domain import CacheEntry, DataKind


class FakeStore:
    """In-memory stand-in exposing only ``get_fresh``."""

    def __init__(self, entries: dict[DataKind, CacheEntry], clock: FakeClock) -> None:
        self.entries = entries
        self.clock = clock
        self.max_ages: dict[DataKind, float] = {}

    async def get_fresh(self, subject, kind, scope=None, max_age_seconds=None):  # noqa: ANN001
        self.max_ages[kind] = max_age_seconds
        entry = self.entries.get(kind)
        if entry is None or self.clock() > entry.expires_at:
            return None
        if max_age_seconds is not None and (self.clock() - entry.created_at).total_seconds() > max_age_seconds:
            return None
        return entry


def _entry(kind: DataKind, age_seconds: float = 0, quality: int = 100) -> CacheEntry:
    created = T0 - timedelta(seconds=age_seconds)
    return CacheEntry(
        subject="BTC",
        kind=kind,
        scope="",
        value={"kind": kind.value},
        quality_score=quality,
        created_at=created,
        expires_at=created + timedelta(seconds=3600),
    )


@pytest.mark.asyncio
async def test_quality_is_weighted_presence_and_lists_missing() -> None:
    clock = FakeClock()
    store = FakeStore({k: _entry(k, quality=80) for k in FIVE_KINDS[:2]}, clock)

    bundle = await ContextAggregator(store, five_kind_settings(), clock=clock).aggregate("btc")

    assert bundle.aggregate_quality == 40
    assert bundle.missing_kinds == FIVE_KINDS[2:]
    assert bundle.average_entry_quality == 80
    assert bundle.available_kinds == FIVE_KINDS[:2]


@pytest.mark.asyncio
async def test_reads_use_analysis_ceiling_not_collection_ttl() -> None:
    clock = FakeClock()
    # 450s old: past the 300s collection TTL, inside the 600s analysis ceiling.
    store = FakeStore({k: _entry(k, age_seconds=450) for k in FIVE_KINDS}, clock)

    bundle = await ContextAggregator(store, five_kind_settings(), clock=clock).aggregate("BTC")

    assert bundle.aggregate_quality == 100
    assert set(store.max_ages.values()) == {600}
    assert bundle.per_kind[DataKind.MARKET_DATA].age_ms == 450_000


@pytest.mark.asyncio
async def test_quality_is_deterministic_and_monotonic() -> None:
    clock = FakeClock()
    settings = five_kind_settings()
    previous: dict[int, int] = {}
    for size in range(len(FIVE_KINDS) + 1):
        for subset in itertools.combinations(FIVE_KINDS, size):
            store = FakeStore({k: _entry(k) for k in subset}, clock)
            agg = ContextAggregator(store, settings, clock=clock)
            first = (await agg.aggregate("BTC")).aggregate_quality
            assert first == (await agg.aggregate("BTC")).aggregate_quality
            assert first == 20 * size
            assert first >= previous.get(size - 1, 0)
            previous[size] = first


@pytest.mark.asyncio
async def test_aggregate_against_real_cache(cache, clock, settings) -> None:
    await cache.upsert("ETH", DataKind.MARKET_DATA, {"price": 3000}, 100, ttl_seconds=600)
    await cache.upsert("ETH", DataKind.SENTIMENT, {"fear_greed_value": 55}, 90, ttl_seconds=600)

    bundle = await ContextAggregator(cache, settings, clock=clock).aggregate("ETH")
    assert bundle.aggregate_quality == 40

    text = format_context_for_analysis(bundle)
    assert text.startswith("# Analysis Context for ETH")
    assert "**Data Quality**: 40%" in text
    assert "## Market Data" in text
    assert "**Missing Data**: technical, news, derivatives" in text
    assert text == format_context_for_analysis(bundle)
