"""Analysis provider contract.

A provider turns a ``ContextBundle`` into a result dict. Its ``kind``
decides how the job worker runs it: ``sync`` providers answer within the
creating call, ``async`` providers run detached and report progress.
"""

from __future__ import annotations

import abc
from typing import Any, Awaitable, Callable

from intelgate.domain import ContextBundle, ProviderKind

ProgressCallback = Callable[[str], Awaitable[None]]


class ProviderError(Exception):
    """A provider call failed. ``transient`` errors are worth retrying."""

    def __init__(self, message: str, transient: bool = True) -> None:
        super().__init__(message)
        self.transient = transient


class AnalysisCancelled(Exception):
    """Raised from a progress checkpoint once the job has been cancelled."""


async def no_progress(_text: str) -> None:
    return None


class AnalysisProvider(abc.ABC):
    name: str = "base"
    kind: ProviderKind = ProviderKind.SYNC

    @abc.abstractmethod
    async def analyze(
        self,
        subject: str,
        context_text: str,
        bundle: ContextBundle,
        progress: ProgressCallback = no_progress,
    ) -> dict[str, Any]:
        """Return the analysis result; raise ``ProviderError`` on failure."""

    async def close(self) -> None:
        return None
