"""SQLAlchemy 2.0 async-compatible ORM models for intelgate.

Both tables are the only shared mutable state in the system: any process
instance may read or write any row.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from intelgate.utils import utc_now

JSONType = JSON().with_variant(JSONB(), "postgresql")

_ACTIVE_JOB_CLAUSE = "status IN ('queued', 'running')"


class Base(DeclarativeBase):
    """Shared declarative base for all intelgate models."""


# ── Collection tier ───────────────────────────────────────────────────

class CacheEntryRow(Base):
    __tablename__ = "cache_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(32), nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    scope: Mapped[str] = mapped_column(String(255), nullable=False, default="")  # "" = shared
    value: Mapped[dict] = mapped_column(JSONType, nullable=False)
    quality_score: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("subject", "kind", "scope", name="uq_cache_entries_subject_kind_scope"),
        Index("ix_cache_entries_expires_at", "expires_at"),
    )


# ── Job tier ──────────────────────────────────────────────────────────

class AnalysisJobRow(Base):
    __tablename__ = "analysis_jobs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    subject: Mapped[str] = mapped_column(String(32), nullable=False)
    scope: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    provider_kind: Mapped[str] = mapped_column(String(8), nullable=False)  # sync / async
    provider_name: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # queued / running / completed / failed / cancelled
    progress_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    context_quality: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_analysis_jobs_subject_status", "subject", "status"),
        Index("ix_analysis_jobs_expires_at", "expires_at"),
        # At most one in-flight job per (subject, scope).
        Index(
            "uq_analysis_jobs_active_subject",
            "subject",
            "scope",
            unique=True,
            postgresql_where=text(_ACTIVE_JOB_CLAUSE),
            sqlite_where=text(_ACTIVE_JOB_CLAUSE),
        ),
    )
