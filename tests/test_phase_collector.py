from __future__ import annotations

import pytest

from fakes import FIVE_KINDS, StaticAdapter, adapters_with, five_kind_settings
from intelgate.collector import PhaseCollector
from intelgate.domain import DataKind, SourceOutcome


@pytest.mark.asyncio
async def test_four_of_five_succeed_one_times_out(cache) -> None:
    settings = five_kind_settings(phases={"all": FIVE_KINDS}, required_phases=["all"])
    collector = PhaseCollector(cache, adapters_with(FIVE_KINDS[:4], hang=[DataKind.DERIVATIVES]), settings)

    report = await collector.collect_phase("BTC", "all")

    assert report.failed == [DataKind.DERIVATIVES]
    assert report.succeeded == FIVE_KINDS[:4]
    assert report.round_quality == 80
    timed_out = [r for r in report.results if r.kind is DataKind.DERIVATIVES][0]
    assert timed_out.outcome is SourceOutcome.TIMEOUT

    for kind in FIVE_KINDS[:4]:
        assert await cache.get_fresh("BTC", kind) is not None
    assert await cache.get_fresh("BTC", DataKind.DERIVATIVES) is None


@pytest.mark.asyncio
async def test_failure_keeps_previous_cached_value(cache, settings) -> None:
    await cache.upsert("BTC", DataKind.NEWS, {"articles": ["old"]}, 70, ttl_seconds=600)
    adapters = adapters_with([DataKind.DERIVATIVES], fail=[DataKind.NEWS])

    report = await PhaseCollector(cache, adapters, settings).collect_phase("BTC", "enhanced", force=True)

    assert report.failed == [DataKind.NEWS]
    assert (await cache.get_fresh("BTC", DataKind.NEWS)).value == {"articles": ["old"]}


@pytest.mark.asyncio
async def test_fresh_kinds_are_not_refetched_unless_forced(cache, settings, clock) -> None:
    adapter = StaticAdapter(DataKind.MARKET_DATA)
    collector = PhaseCollector(cache, adapters_with(FIVE_KINDS[1:3]) | {DataKind.MARKET_DATA: adapter}, settings)

    await collector.collect_phase("BTC", "critical")
    report = await collector.collect_phase("BTC", "critical")
    assert all(r.from_cache for r in report.results)
    assert adapter.get_stats()["calls"] == 1

    await collector.collect_phase("BTC", "critical", force=True)
    assert adapter.get_stats()["calls"] == 2

    clock.advance(301)
    report = await collector.collect_phase("BTC", "critical")
    assert not any(r.from_cache for r in report.results)
    assert adapter.get_stats()["calls"] == 3


@pytest.mark.asyncio
async def test_rows_outlive_collection_ttl_until_analysis_ceiling(cache, settings, clock) -> None:
    await PhaseCollector(cache, adapters_with(FIVE_KINDS[:3]), settings).collect_phase("BTC", "critical")

    clock.advance(450)
    assert await cache.get_fresh("BTC", DataKind.MARKET_DATA, max_age_seconds=300) is None
    assert await cache.get_fresh("BTC", DataKind.MARKET_DATA, max_age_seconds=600) is not None
    clock.advance(151)
    assert await cache.get_fresh("BTC", DataKind.MARKET_DATA) is None


@pytest.mark.asyncio
async def test_missing_adapter_and_unknown_phase(cache, settings) -> None:
    collector = PhaseCollector(cache, adapters_with(FIVE_KINDS[:2]), settings)

    report = await collector.collect_phase("BTC", "critical")
    missing = [r for r in report.results if r.kind is DataKind.SENTIMENT][0]
    assert missing.outcome is SourceOutcome.ERROR
    assert missing.error == "no adapter registered"

    with pytest.raises(KeyError):
        await collector.collect_phase("BTC", "nope")


@pytest.mark.asyncio
async def test_collect_phases_runs_in_order(cache, settings) -> None:
    collector = PhaseCollector(cache, adapters_with(FIVE_KINDS), settings)
    reports = await collector.collect_phases("ETH", ["critical", "enhanced"])
    assert [r.phase for r in reports] == ["critical", "enhanced"]
    assert all(r.round_quality == 100 for r in reports)
