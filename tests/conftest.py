from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from fakes import FakeClock, five_kind_settings
from intelgate.cache.store import CacheStore
from intelgate.db.database import init_db, make_session_factory
from intelgate.jobs.store import JobStore


@pytest_asyncio.fixture
async def engine(tmp_path):
    # On-disk file so separate connections (separate "instances") share state.
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'intelgate.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings():
    return five_kind_settings()


@pytest.fixture
def cache(session_factory, clock) -> CacheStore:
    return CacheStore(session_factory=session_factory, clock=clock)


@pytest.fixture
def jobs(session_factory, clock, settings) -> JobStore:
    return JobStore(session_factory=session_factory, clock=clock, ttl_seconds=settings.job_ttl_seconds)
