"""Core value types shared by the collection and job tiers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class DataKind(str, enum.Enum):
    """Named category of fetched information about a subject."""

    MARKET_DATA = "market_data"
    TECHNICAL = "technical"
    SENTIMENT = "sentiment"
    NEWS = "news"
    ON_CHAIN = "on_chain"
    DERIVATIVES = "derivatives"
    DEFI = "defi"


class SourceOutcome(str, enum.Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    ERROR = "error"


class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.RUNNING})


class ProviderKind(str, enum.Enum):
    """How an analysis provider delivers its result."""

    SYNC = "sync"    # answers within the creating call
    ASYNC = "async"  # runs detached, caller polls


def normalize_subject(subject: str) -> str:
    return (subject or "").strip().upper().replace("$", "")


def normalize_scope(scope: str | None) -> str:
    return (scope or "").strip()


@dataclass
class SourceResult:
    """Outcome of one adapter fetch. Never persisted directly."""

    kind: DataKind
    outcome: SourceOutcome
    latency_ms: int
    value: dict[str, Any] | None = None
    error: str | None = None
    source: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is SourceOutcome.SUCCESS and self.value is not None


@dataclass
class CacheEntry:
    subject: str
    kind: DataKind
    scope: str
    value: dict[str, Any]
    quality_score: int
    created_at: datetime
    expires_at: datetime

    def age_ms(self, now: datetime) -> int:
        return max(0, int((now - self.created_at).total_seconds() * 1000))


@dataclass
class KindSnapshot:
    value: dict[str, Any]
    age_ms: int
    quality_score: int


@dataclass
class ContextBundle:
    """Everything the analysis step is allowed to see about a subject.

    Rebuilt from cache rows on every call; never stored.
    """

    subject: str
    scope: str
    per_kind: dict[DataKind, KindSnapshot]
    aggregate_quality: int
    missing_kinds: list[DataKind]
    average_entry_quality: int
    generated_at: datetime

    @property
    def available_kinds(self) -> list[DataKind]:
        return list(self.per_kind)

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "scope": self.scope or None,
            "per_kind": {
                kind.value: {
                    "value": snap.value,
                    "age_ms": snap.age_ms,
                    "quality_score": snap.quality_score,
                }
                for kind, snap in self.per_kind.items()
            },
            "aggregate_quality": self.aggregate_quality,
            "missing_kinds": [k.value for k in self.missing_kinds],
            "available_kinds": [k.value for k in self.available_kinds],
            "average_entry_quality": self.average_entry_quality,
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass
class JobRecord:
    id: str
    subject: str
    scope: str
    provider_kind: ProviderKind
    provider_name: str
    status: JobStatus
    progress_text: str
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    result: dict[str, Any] | None = None
    error: str | None = None
    attempts: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    context_quality: int | None = None

    @property
    def terminal(self) -> bool:
        return self.status.terminal

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.id,
            "subject": self.subject,
            "scope": self.scope or None,
            "provider_kind": self.provider_kind.value,
            "provider_name": self.provider_name,
            "status": self.status.value,
            "progress_text": self.progress_text,
            "result": self.result,
            "error": self.error,
            "attempts": self.attempts,
            "context_quality": self.context_quality,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "expires_at": self.expires_at.isoformat(),
        }


@dataclass
class PhaseKindReport:
    kind: DataKind
    outcome: SourceOutcome
    latency_ms: int = 0
    quality: int | None = None
    from_cache: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "outcome": self.outcome.value,
            "latency_ms": self.latency_ms,
            "quality": self.quality,
            "from_cache": self.from_cache,
            "error": self.error,
        }


@dataclass
class PhaseReport:
    """Per-kind diagnostics for one phase run. Not authoritative state."""

    phase: str
    subject: str
    results: list[PhaseKindReport] = field(default_factory=list)
    round_quality: int = 0

    @property
    def succeeded(self) -> list[DataKind]:
        return [r.kind for r in self.results if r.outcome is SourceOutcome.SUCCESS]

    @property
    def failed(self) -> list[DataKind]:
        return [r.kind for r in self.results if r.outcome is not SourceOutcome.SUCCESS]

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase,
            "subject": self.subject,
            "per_kind": [r.to_dict() for r in self.results],
            "succeeded": [k.value for k in self.succeeded],
            "failed": [k.value for k in self.failed],
            "round_quality": self.round_quality,
        }
