"""Analysis providers — strategies the job worker runs inline or detached."""

from __future__ import annotations

from intelgate.analysis.base import (
    AnalysisCancelled,
    AnalysisProvider,
    ProgressCallback,
    ProviderError,
    no_progress,
)
from intelgate.analysis.mock import MockAnalysisProvider
from intelgate.config import Settings
from intelgate.domain import ProviderKind


def build_provider(settings: Settings, mock: bool = False) -> AnalysisProvider:
    """Provider selected by ``settings.analysis_provider``; mock mode never calls an LLM."""
    name = settings.analysis_provider
    if name == "mock-async" or (mock and name == "research"):
        return MockAnalysisProvider(kind=ProviderKind.ASYNC, delay=0.5)
    if name == "mock-sync" or mock:
        return MockAnalysisProvider(kind=ProviderKind.SYNC)

    from intelgate.analysis.llm import LLMAnalysisProvider, ResearchAnalysisProvider

    if name == "research":
        return ResearchAnalysisProvider()
    if name == "llm":
        return LLMAnalysisProvider()
    raise ValueError(f"unknown analysis provider {name!r}")


__all__ = [
    "AnalysisCancelled",
    "AnalysisProvider",
    "MockAnalysisProvider",
    "ProgressCallback",
    "ProviderError",
    "build_provider",
    "no_progress",
]
