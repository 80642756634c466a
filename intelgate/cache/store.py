"""Persistent per-kind cache of collected source data.

Rows are keyed by (subject, kind, scope), overwritten on every successful
fetch and left to expire. Writes are last-write-wins: entries are advisory
and time-bound, so a lost update only means a slightly staler read.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from intelgate.db.database import get_session, get_session_factory
from intelgate.db.models import CacheEntryRow
from intelgate.domain import CacheEntry, DataKind, normalize_scope, normalize_subject
from intelgate.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def _to_entry(row: CacheEntryRow) -> CacheEntry:
    return CacheEntry(
        subject=row.subject,
        kind=DataKind(row.kind),
        scope=row.scope,
        value=row.value,
        quality_score=row.quality_score,
        created_at=ensure_utc(row.created_at),
        expires_at=ensure_utc(row.expires_at),
    )


class CacheStore:
    """get-if-fresh / upsert access to the ``cache_entries`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._factory = session_factory
        self._clock = clock

    def _session(self):
        return get_session(self._factory or get_session_factory())

    def _is_fresh(self, entry: CacheEntry, now: datetime, max_age_seconds: float | None) -> bool:
        if now > entry.expires_at:
            return False
        if max_age_seconds is not None and (now - entry.created_at).total_seconds() > max_age_seconds:
            return False
        return True

    # ── reads ──────────────────────────────────────────────────────────

    async def get_fresh(
        self,
        subject: str,
        kind: DataKind,
        scope: str | None = None,
        max_age_seconds: float | None = None,
    ) -> CacheEntry | None:
        """Return the entry, or None if missing, expired, or older than *max_age_seconds*."""
        async with self._session() as session:
            row = (await session.execute(
                select(CacheEntryRow).where(
                    CacheEntryRow.subject == normalize_subject(subject),
                    CacheEntryRow.kind == DataKind(kind).value,
                    CacheEntryRow.scope == normalize_scope(scope),
                )
            )).scalar_one_or_none()
        if row is None:
            return None
        entry = _to_entry(row)
        if not self._is_fresh(entry, self._clock(), max_age_seconds):
            logger.debug("[cache] stale %s/%s (expires %s)", entry.subject, entry.kind.value, entry.expires_at)
            return None
        return entry

    async def get_many(
        self,
        subject: str,
        kinds: Iterable[DataKind],
        scope: str | None = None,
        max_age: dict[DataKind, float] | None = None,
    ) -> dict[DataKind, CacheEntry]:
        """Fresh entries for several kinds in one query."""
        wanted = [DataKind(k) for k in kinds]
        if not wanted:
            return {}
        async with self._session() as session:
            rows = (await session.execute(
                select(CacheEntryRow).where(
                    CacheEntryRow.subject == normalize_subject(subject),
                    CacheEntryRow.scope == normalize_scope(scope),
                    CacheEntryRow.kind.in_([k.value for k in wanted]),
                )
            )).scalars().all()
        now = self._clock()
        out: dict[DataKind, CacheEntry] = {}
        for row in rows:
            entry = _to_entry(row)
            limit = (max_age or {}).get(entry.kind)
            if self._is_fresh(entry, now, limit):
                out[entry.kind] = entry
        return out

    # ── writes ─────────────────────────────────────────────────────────

    async def upsert(
        self,
        subject: str,
        kind: DataKind,
        value: dict[str, Any],
        quality_score: int,
        ttl_seconds: float,
        scope: str | None = None,
    ) -> CacheEntry:
        """Insert or overwrite the row for (subject, kind, scope)."""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        now = self._clock()
        values = {
            "subject": normalize_subject(subject),
            "kind": DataKind(kind).value,
            "scope": normalize_scope(scope),
            "value": value,
            "quality_score": max(0, min(100, int(quality_score))),
            "created_at": now,
            "expires_at": now + timedelta(seconds=ttl_seconds),
        }
        async with self._session() as session:
            dialect = session.get_bind().dialect.name
            insert_fn = _UPSERT_DIALECTS.get(dialect)
            if insert_fn is not None:
                stmt = insert_fn(CacheEntryRow).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["subject", "kind", "scope"],
                    set_={
                        "value": stmt.excluded.value,
                        "quality_score": stmt.excluded.quality_score,
                        "created_at": stmt.excluded.created_at,
                        "expires_at": stmt.excluded.expires_at,
                    },
                )
                await session.execute(stmt)
            else:
                await self._merge(session, values)
        logger.debug(
            "[cache] upsert %s/%s quality=%d ttl=%ds",
            values["subject"], values["kind"], values["quality_score"], ttl_seconds,
        )
        return CacheEntry(
            subject=values["subject"],
            kind=DataKind(values["kind"]),
            scope=values["scope"],
            value=value,
            quality_score=values["quality_score"],
            created_at=now,
            expires_at=values["expires_at"],
        )

    @staticmethod
    async def _merge(session: AsyncSession, values: dict[str, Any]) -> None:
        row = (await session.execute(
            select(CacheEntryRow).where(
                CacheEntryRow.subject == values["subject"],
                CacheEntryRow.kind == values["kind"],
                CacheEntryRow.scope == values["scope"],
            )
        )).scalar_one_or_none()
        if row is None:
            session.add(CacheEntryRow(**values))
            return
        for key, val in values.items():
            setattr(row, key, val)

    async def invalidate(self, subject: str, kind: DataKind | None = None, scope: str | None = None) -> int:
        """Drop cached rows so the next collection refetches them."""
        stmt = delete(CacheEntryRow).where(
            CacheEntryRow.subject == normalize_subject(subject),
            CacheEntryRow.scope == normalize_scope(scope),
        )
        if kind is not None:
            stmt = stmt.where(CacheEntryRow.kind == DataKind(kind).value)
        async with self._session() as session:
            result = await session.execute(stmt)
        logger.info("[cache] invalidated %d rows for %s", result.rowcount or 0, normalize_subject(subject))
        return result.rowcount or 0

    async def purge_expired(self) -> int:
        """Housekeeping: delete rows whose expiry has passed."""
        async with self._session() as session:
            result = await session.execute(
                delete(CacheEntryRow).where(CacheEntryRow.expires_at < self._clock())
            )
        return result.rowcount or 0

    # ── stats ──────────────────────────────────────────────────────────

    async def stats(self, subject: str | None = None) -> dict[str, Any]:
        now = self._clock()
        stmt = select(
            func.count(CacheEntryRow.id),
            func.count(func.distinct(CacheEntryRow.subject)),
            func.min(CacheEntryRow.created_at),
            func.max(CacheEntryRow.created_at),
            func.avg(CacheEntryRow.quality_score),
        ).where(CacheEntryRow.expires_at > now)
        kinds_stmt = select(CacheEntryRow.kind).where(CacheEntryRow.expires_at > now).distinct()
        if subject:
            stmt = stmt.where(CacheEntryRow.subject == normalize_subject(subject))
            kinds_stmt = kinds_stmt.where(CacheEntryRow.subject == normalize_subject(subject))
        async with self._session() as session:
            total, subjects, oldest, newest, avg_quality = (await session.execute(stmt)).one()
            kinds = sorted(r[0] for r in (await session.execute(kinds_stmt)).all())
        return {
            "total_entries": int(total or 0),
            "total_subjects": int(subjects or 0),
            "kinds": kinds,
            "oldest_entry": ensure_utc(oldest).isoformat() if oldest else None,
            "newest_entry": ensure_utc(newest).isoformat() if newest else None,
            "average_quality": round(float(avg_quality), 1) if avg_quality is not None else None,
        }
