from __future__ import annotations

import json

import pytest

from fakes import FIVE_KINDS
from intelgate.analysis import build_provider
from intelgate.analysis.base import ProviderError
from intelgate.analysis.llm import (
    SUMMARY_PROMPT,
    LLMAnalysisProvider,
    ResearchAnalysisProvider,
    parse_analysis,
)
from intelgate.context import ContextAggregator, format_context_for_analysis
from intelgate.domain import DataKind, ProviderKind


class ScriptedLLM:
    """Replays canned completions; an Exception entry is raised instead."""

    model = "test-model"

    def __init__(self, replies):
        self.replies = list(replies)
        self.prompts: list[tuple[str, str]] = []

    async def complete(self, system_prompt, user_prompt, json_mode=False):  # noqa: ANN001
        self.prompts.append((system_prompt, user_prompt))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


SUMMARY = json.dumps({
    "summary": "Momentum is positive with funding neutral.",
    "outlook": "Bullish",
    "confidence": 140,
    "key_points": ["price up", "funding flat"],
})


async def _bundle(cache, clock, settings, kinds=FIVE_KINDS[:3]):
    for kind in kinds:
        await cache.upsert("BTC", kind, {"kind": kind.value, "price": 100}, 100, ttl_seconds=600)
    return await ContextAggregator(cache, settings, clock=clock).aggregate("BTC")


def test_parse_analysis_normalises_fields() -> None:
    parsed = parse_analysis(SUMMARY)
    assert parsed["outlook"] == "bullish"
    assert parsed["confidence"] == 100
    assert parsed["key_points"] == ["price up", "funding flat"]


def test_parse_analysis_extracts_object_from_prose() -> None:
    raw = 'Sure, here it is:\n{"summary": "Flat.", "outlook": "sideways", "confidence": "n/a"}\nThanks'
    parsed = parse_analysis(raw)
    assert parsed["summary"] == "Flat."
    assert parsed["outlook"] == "neutral"
    assert parsed["confidence"] == 50
    assert parsed["key_points"] == []


def test_parse_analysis_without_summary_is_transient_error() -> None:
    with pytest.raises(ProviderError) as info:
        parse_analysis("no json here")
    assert info.value.transient is True


@pytest.mark.asyncio
async def test_llm_provider_single_call(cache, clock, settings) -> None:
    bundle = await _bundle(cache, clock, settings)
    llm = ScriptedLLM([SUMMARY])
    provider = LLMAnalysisProvider(client=llm)

    result = await provider.analyze("BTC", format_context_for_analysis(bundle), bundle)

    assert provider.kind is ProviderKind.SYNC
    assert result["model"] == "test-model"
    assert result["data_quality"] == 60
    assert len(llm.prompts) == 1


@pytest.mark.asyncio
async def test_research_provider_tolerates_transient_section_failure(cache, clock, settings) -> None:
    bundle = await _bundle(cache, clock, settings)
    llm = ScriptedLLM([
        "Price is 100.",
        ProviderError("rate limited", transient=True),
        "Sentiment is calm.",
        SUMMARY,
    ])
    steps: list[str] = []

    async def progress(text: str) -> None:
        steps.append(text)

    result = await ResearchAnalysisProvider(client=llm).analyze("BTC", "", bundle, progress)

    assert list(result["sections"]) == [DataKind.MARKET_DATA.value, DataKind.SENTIMENT.value]
    assert result["failed_sections"] == [DataKind.TECHNICAL.value]
    assert llm.prompts[-1][0] == SUMMARY_PROMPT
    assert len(steps) == 4
    assert steps[-1].startswith("writing executive summary")


@pytest.mark.asyncio
async def test_research_provider_propagates_permanent_error(cache, clock, settings) -> None:
    bundle = await _bundle(cache, clock, settings)
    llm = ScriptedLLM([ProviderError("bad key", transient=False)])

    with pytest.raises(ProviderError) as info:
        await ResearchAnalysisProvider(client=llm).analyze("BTC", "", bundle)
    assert info.value.transient is False


def test_build_provider_rejects_unknown_name(settings) -> None:
    with pytest.raises(ValueError):
        build_provider(settings.model_copy(update={"analysis_provider": "oracle"}))
