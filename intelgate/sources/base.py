"""Abstract base adapter that every external data source inherits from."""

from __future__ import annotations

import abc
import asyncio
import logging
import time
from typing import Any

from intelgate.domain import DataKind, SourceOutcome, SourceResult, normalize_subject

logger = logging.getLogger(__name__)


class SourceUnavailable(Exception):
    """Raised inside ``_fetch`` when a provider has nothing usable to return."""


class SourceAdapter(abc.ABC):
    """One adapter per external capability.

    Subclasses implement ``kind``, ``name`` and ``_fetch()``. ``fetch()``
    never raises: timeouts and provider errors come back as a typed
    ``SourceResult.outcome`` so one bad source cannot abort a fan-out.
    Adapters never write to the cache.
    """

    def __init__(self) -> None:
        self._calls = 0
        self._failures = 0

    # ── abstract interface ─────────────────────────────────────────────

    @property
    @abc.abstractmethod
    def kind(self) -> DataKind:
        """The data-kind this adapter produces."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short provider identifier, e.g. 'coingecko'."""

    @abc.abstractmethod
    async def _fetch(self, subject: str) -> dict[str, Any]:
        """Fetch and shape the provider payload for *subject*."""

    # ── contract ───────────────────────────────────────────────────────

    async def fetch(self, subject: str, timeout: float) -> SourceResult:
        """Fetch under a hard timeout (seconds), capturing every failure as data."""
        subject = normalize_subject(subject)
        self._calls += 1
        started = time.monotonic()
        try:
            value = await asyncio.wait_for(self._fetch(subject), timeout=timeout)
        except asyncio.TimeoutError:
            self._failures += 1
            logger.warning("[%s] %s timed out after %.1fs", self.name, subject, timeout)
            return self._result(SourceOutcome.TIMEOUT, started, error=f"timed out after {timeout:.1f}s")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._failures += 1
            logger.warning("[%s] %s fetch failed: %s", self.name, subject, exc)
            return self._result(SourceOutcome.ERROR, started, error=str(exc) or type(exc).__name__)

        if not isinstance(value, dict):
            self._failures += 1
            return self._result(SourceOutcome.ERROR, started, error="adapter returned non-dict payload")
        return self._result(SourceOutcome.SUCCESS, started, value=value)

    def _result(
        self,
        outcome: SourceOutcome,
        started: float,
        value: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> SourceResult:
        return SourceResult(
            kind=self.kind,
            outcome=outcome,
            latency_ms=int((time.monotonic() - started) * 1000),
            value=value,
            error=error,
            source=self.name,
        )

    # ── stats ──────────────────────────────────────────────────────────

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "calls": self._calls,
            "failures": self._failures,
        }
