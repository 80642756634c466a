"""Test doubles shared by the test modules."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

from intelgate.config import KindPolicy, Settings
from intelgate.domain import DataKind
from intelgate.sources.base import SourceAdapter, SourceUnavailable

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

FIVE_KINDS = [
    DataKind.MARKET_DATA,
    DataKind.TECHNICAL,
    DataKind.SENTIMENT,
    DataKind.NEWS,
    DataKind.DERIVATIVES,
]


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def five_kind_settings(**overrides: Any) -> Settings:
    """Five kinds of weight 20 each: three critical, two enhanced."""
    policies = {
        kind: KindPolicy(collection_ttl_seconds=300, weight=20, timeout_seconds=0.2)
        for kind in FIVE_KINDS
    }
    values: dict[str, Any] = {
        "kind_policies": policies,
        "phases": {"critical": FIVE_KINDS[:3], "enhanced": FIVE_KINDS[3:]},
        "required_phases": ["critical", "enhanced"],
        "gate_threshold": 70,
        "worker_max_retries": 2,
        "worker_backoff_base": 0.0,
        "job_dispatch": "task",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class StaticAdapter(SourceAdapter):
    """Answers with a fixed payload, or fails/hangs on request."""

    def __init__(
        self,
        kind: DataKind,
        payload: dict[str, Any] | None = None,
        fail: bool = False,
        delay: float = 0.0,
    ) -> None:
        super().__init__()
        self._kind = kind
        self._payload = payload if payload is not None else {"symbol": "X", "value": 1}
        self._fail = fail
        self._delay = delay

    @property
    def kind(self) -> DataKind:
        return self._kind

    @property
    def name(self) -> str:
        return f"static_{self._kind.value}"

    async def _fetch(self, subject: str) -> dict[str, Any]:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._fail:
            raise SourceUnavailable(f"{self._kind.value} down")
        return dict(self._payload, symbol=subject)


def adapters_with(ok: list[DataKind], hang: list[DataKind] = (), fail: list[DataKind] = ()) -> dict:
    out: dict[DataKind, SourceAdapter] = {k: StaticAdapter(k) for k in ok}
    out.update({k: StaticAdapter(k, delay=5.0) for k in hang})
    out.update({k: StaticAdapter(k, fail=True) for k in fail})
    return out


class FakePipeline:
    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis
        self._ops: list[tuple[str, tuple]] = []

    def __getattr__(self, name: str):
        def queue(*args):
            self._ops.append((name, args))
            return self
        return queue

    async def execute(self) -> list[Any]:
        results = []
        for name, args in self._ops:
            results.append(await getattr(self._redis, name)(*args))
        self._ops = []
        return results


class FakeRedis:
    """The handful of list/counter commands the job queue uses."""

    def __init__(self) -> None:
        self.lists: dict[str, list[str]] = {}
        self.values: dict[str, int] = {}
        self.closed = False

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)

    async def rpush(self, key: str, value: str) -> int:
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    async def lpop(self, key: str) -> str | None:
        items = self.lists.get(key) or []
        return items.pop(0) if items else None

    async def llen(self, key: str) -> int:
        return len(self.lists.get(key) or [])

    async def incrby(self, key: str, amount: int) -> int:
        self.values[key] = self.values.get(key, 0) + amount
        return self.values[key]

    async def get(self, key: str) -> str | None:
        return str(self.values[key]) if key in self.values else None

    async def aclose(self) -> None:
        self.closed = True
