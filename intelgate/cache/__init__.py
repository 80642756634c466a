"""Cache tier — persisted per-kind source data plus quality scoring."""

from intelgate.cache.quality import score_payload, score_round, weighted_presence
from intelgate.cache.store import CacheStore

__all__ = [
    "CacheStore",
    "score_payload",
    "score_round",
    "weighted_presence",
]
