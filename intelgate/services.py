"""Wires stores, collectors, providers and the orchestrator together.

Each process (API server, worker, CLI) builds one ``Services`` container.
Nothing in it carries orchestration state between requests: every component
reads and writes the shared database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from intelgate.analysis import AnalysisProvider, build_provider
from intelgate.cache.store import CacheStore
from intelgate.collector import PhaseCollector
from intelgate.config import Settings, get_settings
from intelgate.context import ContextAggregator
from intelgate.domain import DataKind
from intelgate.jobs.dispatch import Dispatcher, RedisJobQueue, TaskDispatcher
from intelgate.jobs.store import JobStore
from intelgate.jobs.worker import JobWorker
from intelgate.orchestrator import Orchestrator
from intelgate.sources.base import SourceAdapter
from intelgate.sources.registry import build_adapters, close_adapters
from intelgate.utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    cache: CacheStore
    jobs: JobStore
    adapters: dict[DataKind, SourceAdapter]
    collector: PhaseCollector
    aggregator: ContextAggregator
    provider: AnalysisProvider
    worker: JobWorker
    orchestrator: Orchestrator
    dispatcher: Dispatcher | None = None
    http_client: httpx.AsyncClient | None = None
    _owned: list[Any] = field(default_factory=list)

    async def close(self) -> None:
        if isinstance(self.dispatcher, TaskDispatcher):
            await self.dispatcher.drain()
        await close_adapters(self.adapters)
        for resource in self._owned:
            await resource.close()
        if self.http_client is not None:
            await self.http_client.aclose()


def build_services(
    settings: Settings | None = None,
    mock: bool | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    adapters: dict[DataKind, SourceAdapter] | None = None,
    provider: AnalysisProvider | None = None,
    dispatcher: Dispatcher | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> Services:
    """Build the full component graph; any piece can be injected for tests."""
    settings = settings or get_settings()
    mock = settings.mock_mode if mock is None else mock

    http_client = None
    if adapters is None:
        if not mock:
            http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(20.0),
                headers={"User-Agent": "intelgate/collector"},
                follow_redirects=True,
            )
        adapters = build_adapters(settings, mock=mock, client=http_client)

    cache = CacheStore(session_factory=session_factory, clock=clock)
    jobs = JobStore(session_factory=session_factory, clock=clock, ttl_seconds=settings.job_ttl_seconds)
    collector = PhaseCollector(cache, adapters, settings)
    aggregator = ContextAggregator(cache, settings, clock=clock)
    provider = provider or build_provider(settings, mock=mock)
    worker = JobWorker(jobs, aggregator, {provider.name: provider}, settings)

    owned: list[Any] = []
    if dispatcher is None:
        if settings.job_dispatch == "redis":
            queue = RedisJobQueue(redis_url=settings.redis_url, key=settings.job_queue_key)
            owned.append(queue)
            dispatcher = queue
        else:
            dispatcher = TaskDispatcher(worker)

    orchestrator = Orchestrator(
        collector, aggregator, jobs, worker, provider, settings, dispatcher=dispatcher,
    )
    logger.info(
        "Services ready: %d adapters, provider=%s (%s), dispatch=%s",
        len(adapters), provider.name, provider.kind.value, type(dispatcher).__name__,
    )
    return Services(
        settings=settings,
        cache=cache,
        jobs=jobs,
        adapters=adapters,
        collector=collector,
        aggregator=aggregator,
        provider=provider,
        worker=worker,
        orchestrator=orchestrator,
        dispatcher=dispatcher,
        http_client=http_client,
        _owned=owned,
    )
