"""Persistent job store — the single source of truth for analysis job state.

Any process instance may create, advance or read any job; nothing about a
job lives only in memory. Status moves forward only:

    queued → running → completed | failed | cancelled
    queued → failed | cancelled

Every transition is a conditional UPDATE on the current status, so a late
writer (e.g. a worker finishing after a cancel) changes nothing.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from intelgate.db.database import get_session, get_session_factory
from intelgate.db.models import AnalysisJobRow
from intelgate.domain import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    JobRecord,
    JobStatus,
    ProviderKind,
    normalize_scope,
    normalize_subject,
)
from intelgate.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

_ERROR_MAX_CHARS = 2000


class JobNotFound(KeyError):
    """No job row with the given id."""


def _opt_utc(dt: datetime | None) -> datetime | None:
    return ensure_utc(dt) if dt is not None else None


def _to_record(row: AnalysisJobRow) -> JobRecord:
    return JobRecord(
        id=row.id,
        subject=row.subject,
        scope=row.scope,
        provider_kind=ProviderKind(row.provider_kind),
        provider_name=row.provider_name,
        status=JobStatus(row.status),
        progress_text=row.progress_text or "",
        result=row.result,
        error=row.error,
        attempts=row.attempts or 0,
        context_quality=row.context_quality,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
        started_at=_opt_utc(row.started_at),
        finished_at=_opt_utc(row.finished_at),
        expires_at=ensure_utc(row.expires_at),
    )


def _statuses(values: Iterable[JobStatus]) -> list[str]:
    return [s.value for s in values]


class JobStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Callable[[], datetime] = utc_now,
        ttl_seconds: int = 86400,
    ) -> None:
        self._factory = session_factory
        self._clock = clock
        self._ttl = ttl_seconds

    def _session(self):
        return get_session(self._factory or get_session_factory())

    # ── creation ───────────────────────────────────────────────────────

    async def create_or_get(
        self,
        subject: str,
        provider_kind: ProviderKind,
        provider_name: str,
        scope: str | None = None,
    ) -> tuple[JobRecord, bool]:
        """Create a queued job, or return the in-flight one for this subject.

        Returns ``(record, created)``. A concurrent creator losing the race on
        the partial unique index gets the winner's record back.
        """
        subject = normalize_subject(subject)
        scope = normalize_scope(scope)
        existing = await self.find_active(subject, scope)
        if existing is not None:
            logger.info("[jobs] %s already has job %s (%s)", subject, existing.id, existing.status.value)
            return existing, False

        try:
            return await self._insert(subject, scope, provider_kind, provider_name), True
        except IntegrityError:
            existing = await self.find_active(subject, scope)
        if existing is not None:
            logger.info("[jobs] %s lost create race, reusing job %s", subject, existing.id)
            return existing, False
        # The winner already finished; its slot is free again.
        return await self._insert(subject, scope, provider_kind, provider_name), True

    async def _insert(
        self, subject: str, scope: str, provider_kind: ProviderKind, provider_name: str,
    ) -> JobRecord:
        now = self._clock()
        row = AnalysisJobRow(
            id=uuid.uuid4().hex,
            subject=subject,
            scope=scope,
            provider_kind=ProviderKind(provider_kind).value,
            provider_name=provider_name,
            status=JobStatus.QUEUED.value,
            progress_text="queued",
            attempts=0,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=self._ttl),
        )
        async with self._session() as session:
            session.add(row)
        logger.info("[jobs] created %s for %s (%s/%s)", row.id, subject, provider_name, row.provider_kind)
        return _to_record(row)

    async def create(
        self,
        subject: str,
        provider_kind: ProviderKind,
        provider_name: str = "default",
        scope: str | None = None,
    ) -> JobRecord:
        record, _ = await self.create_or_get(subject, provider_kind, provider_name, scope)
        return record

    # ── reads ──────────────────────────────────────────────────────────

    async def get(self, job_id: str) -> JobRecord | None:
        async with self._session() as session:
            row = await session.get(AnalysisJobRow, job_id)
            return _to_record(row) if row is not None else None

    async def _require(self, job_id: str) -> JobRecord:
        record = await self.get(job_id)
        if record is None:
            raise JobNotFound(job_id)
        return record

    async def find_active(self, subject: str, scope: str | None = None) -> JobRecord | None:
        async with self._session() as session:
            row = (await session.execute(
                select(AnalysisJobRow)
                .where(
                    AnalysisJobRow.subject == normalize_subject(subject),
                    AnalysisJobRow.scope == normalize_scope(scope),
                    AnalysisJobRow.status.in_(_statuses(ACTIVE_STATUSES)),
                )
                .order_by(AnalysisJobRow.created_at.asc())
                .limit(1)
            )).scalar_one_or_none()
            return _to_record(row) if row is not None else None

    async def list_queued(self, limit: int = 10, min_age_seconds: float = 0.0) -> list[JobRecord]:
        """Oldest queued jobs first; *min_age_seconds* leaves fresh jobs to their dispatcher."""
        cutoff = self._clock() - timedelta(seconds=min_age_seconds)
        async with self._session() as session:
            rows = (await session.execute(
                select(AnalysisJobRow)
                .where(
                    AnalysisJobRow.status == JobStatus.QUEUED.value,
                    AnalysisJobRow.created_at <= cutoff,
                )
                .order_by(AnalysisJobRow.created_at.asc())
                .limit(limit)
            )).scalars().all()
            return [_to_record(r) for r in rows]

    # ── transitions ────────────────────────────────────────────────────

    async def _transition(
        self,
        job_id: str,
        allowed_from: Iterable[JobStatus],
        values: dict[str, Any],
    ) -> tuple[JobRecord, bool]:
        values = {**values, "updated_at": self._clock()}
        async with self._session() as session:
            result = await session.execute(
                update(AnalysisJobRow)
                .where(
                    AnalysisJobRow.id == job_id,
                    AnalysisJobRow.status.in_(_statuses(allowed_from)),
                )
                .values(**values)
            )
            changed = (result.rowcount or 0) > 0
        record = await self._require(job_id)
        return record, changed

    async def claim(self, job_id: str) -> JobRecord | None:
        """queued → running. None when the job is not (or no longer) queued."""
        record, changed = await self._transition(
            job_id,
            [JobStatus.QUEUED],
            {"status": JobStatus.RUNNING.value, "started_at": self._clock(), "progress_text": "running"},
        )
        return record if changed else None

    async def update_progress(
        self,
        job_id: str,
        text: str,
        attempts: int | None = None,
        context_quality: int | None = None,
    ) -> JobRecord:
        values: dict[str, Any] = {"progress_text": text}
        if attempts is not None:
            values["attempts"] = attempts
        if context_quality is not None:
            values["context_quality"] = context_quality
        record, _ = await self._transition(job_id, ACTIVE_STATUSES, values)
        return record

    def _terminal_values(self, status: JobStatus, **extra: Any) -> dict[str, Any]:
        now = self._clock()
        return {
            "status": status.value,
            "finished_at": now,
            "expires_at": now + timedelta(seconds=self._ttl),
            **extra,
        }

    async def complete(self, job_id: str, result: dict[str, Any]) -> JobRecord:
        record, changed = await self._transition(
            job_id,
            [JobStatus.RUNNING],
            self._terminal_values(JobStatus.COMPLETED, result=result, progress_text="completed"),
        )
        if not changed:
            logger.info("[jobs] %s not completed: status is %s", job_id, record.status.value)
        return record

    async def fail(self, job_id: str, error: str) -> JobRecord:
        record, changed = await self._transition(
            job_id,
            ACTIVE_STATUSES,
            self._terminal_values(JobStatus.FAILED, error=error[:_ERROR_MAX_CHARS], progress_text="failed"),
        )
        if changed:
            logger.warning("[jobs] %s failed: %s", job_id, error)
        return record

    async def cancel(self, job_id: str) -> JobRecord:
        record, changed = await self._transition(
            job_id,
            ACTIVE_STATUSES,
            self._terminal_values(JobStatus.CANCELLED, progress_text="cancelled"),
        )
        if changed:
            logger.info("[jobs] %s cancelled", job_id)
        return record

    async def is_cancelled(self, job_id: str) -> bool:
        record = await self.get(job_id)
        return record is not None and record.status is JobStatus.CANCELLED

    # ── housekeeping ───────────────────────────────────────────────────

    async def fail_stale(self, older_than_seconds: float) -> int:
        """Fail in-flight jobs that have not been updated for *older_than_seconds*."""
        now = self._clock()
        cutoff = now - timedelta(seconds=older_than_seconds)
        async with self._session() as session:
            result = await session.execute(
                update(AnalysisJobRow)
                .where(
                    AnalysisJobRow.status.in_(_statuses(ACTIVE_STATUSES)),
                    AnalysisJobRow.updated_at < cutoff,
                )
                .values(
                    status=JobStatus.FAILED.value,
                    error=f"worker lost: no progress for {int(older_than_seconds)}s",
                    progress_text="failed",
                    updated_at=now,
                    finished_at=now,
                    expires_at=now + timedelta(seconds=self._ttl),
                )
            )
        count = result.rowcount or 0
        if count:
            logger.warning("[jobs] failed %d stale jobs", count)
        return count

    async def purge_expired(self) -> int:
        """Delete terminal jobs past their result lifetime. In-flight rows are never touched."""
        async with self._session() as session:
            result = await session.execute(
                delete(AnalysisJobRow).where(
                    AnalysisJobRow.status.in_(_statuses(TERMINAL_STATUSES)),
                    AnalysisJobRow.expires_at < self._clock(),
                )
            )
        return result.rowcount or 0
