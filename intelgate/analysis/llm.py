"""LLM-backed analysis providers.

``LLMAnalysisProvider`` makes one JSON-mode completion and is fast enough to
run inline. ``ResearchAnalysisProvider`` analyses each data kind separately
and then writes an executive summary; it takes minutes and runs detached.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from intelgate.analysis.base import (
    AnalysisProvider,
    ProgressCallback,
    ProviderError,
    no_progress,
)
from intelgate.context import KIND_TITLES, format_kind_for_analysis
from intelgate.domain import ContextBundle, ProviderKind
from intelgate.llm_client import LLMClient, get_analysis_client

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """You are a crypto market analyst. Using ONLY the data provided, write a concise assessment of the asset.

Return a JSON object with exactly these keys:
{
  "summary": "3-5 sentence assessment grounded in the numbers given",
  "outlook": "bullish" | "bearish" | "neutral",
  "confidence": integer 0-100, lower when data is missing or stale,
  "key_points": ["short bullet", ...]
}

Do not invent figures. If a data section is missing, say what it would have changed."""

SECTION_PROMPT = """You are a crypto analyst reviewing one slice of data about an asset.
In 2-4 sentences state what this data says about the asset right now. Cite the figures you rely on.
Plain text only."""

SUMMARY_PROMPT = """You are the lead analyst combining section reports into one executive summary.

Return a JSON object with exactly these keys:
{
  "summary": "executive summary, 4-6 sentences",
  "outlook": "bullish" | "bearish" | "neutral",
  "confidence": integer 0-100,
  "key_points": ["short bullet", ...]
}"""

_OUTLOOKS = {"bullish", "bearish", "neutral"}


def parse_analysis(raw: str) -> dict[str, Any]:
    """Parse the JSON object from an LLM response, with a brace-match fallback."""
    data: Any = None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", raw or "", re.DOTALL)
        if match:
            try:
                data = json.loads(match.group())
            except json.JSONDecodeError:
                data = None
    if not isinstance(data, dict) or not str(data.get("summary", "")).strip():
        raise ProviderError("could not parse analysis JSON from LLM response", transient=True)

    outlook = str(data.get("outlook", "neutral")).lower()
    try:
        confidence = int(float(data.get("confidence", 50)))
    except (TypeError, ValueError):
        confidence = 50
    points = data.get("key_points") or []
    if not isinstance(points, list):
        points = [str(points)]
    return {
        "summary": str(data["summary"]).strip(),
        "outlook": outlook if outlook in _OUTLOOKS else "neutral",
        "confidence": max(0, min(100, confidence)),
        "key_points": [str(p) for p in points][:10],
    }


class LLMAnalysisProvider(AnalysisProvider):
    name = "llm"
    kind = ProviderKind.SYNC

    def __init__(self, client: LLMClient | None = None) -> None:
        self._llm = client or get_analysis_client()

    async def analyze(
        self,
        subject: str,
        context_text: str,
        bundle: ContextBundle,
        progress: ProgressCallback = no_progress,
    ) -> dict[str, Any]:
        await progress("requesting analysis")
        raw = await self._llm.complete(ANALYSIS_PROMPT, context_text, json_mode=True)
        result = parse_analysis(raw)
        result["model"] = self._llm.model
        result["data_quality"] = bundle.aggregate_quality
        return result


class ResearchAnalysisProvider(AnalysisProvider):
    name = "research"
    kind = ProviderKind.ASYNC

    def __init__(self, client: LLMClient | None = None) -> None:
        self._llm = client or get_analysis_client()

    async def analyze(
        self,
        subject: str,
        context_text: str,
        bundle: ContextBundle,
        progress: ProgressCallback = no_progress,
    ) -> dict[str, Any]:
        kinds = bundle.available_kinds
        sections: dict[str, str] = {}
        failed: list[str] = []

        for i, kind in enumerate(kinds, 1):
            await progress(f"analyzing {KIND_TITLES.get(kind, kind.value).lower()} ({i}/{len(kinds)})")
            try:
                sections[kind.value] = (
                    await self._llm.complete(SECTION_PROMPT, format_kind_for_analysis(bundle, kind))
                ).strip()
            except ProviderError as exc:
                if not exc.transient:
                    raise
                logger.warning("[research] %s section %s failed: %s", subject, kind.value, exc)
                failed.append(kind.value)

        if not sections:
            raise ProviderError(f"every section analysis failed for {subject}", transient=True)

        await progress(f"writing executive summary ({len(sections)} sections)")
        report = "\n\n".join(f"## {k}\n{text}" for k, text in sections.items())
        raw = await self._llm.complete(
            SUMMARY_PROMPT,
            f"Asset: {subject}\nData quality: {bundle.aggregate_quality}%\n\n{report}",
            json_mode=True,
        )
        result = parse_analysis(raw)
        result["sections"] = sections
        result["failed_sections"] = failed
        result["model"] = self._llm.model
        result["data_quality"] = bundle.aggregate_quality
        return result
