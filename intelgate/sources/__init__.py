"""Source adapters — one per external capability, failures returned as data."""

from intelgate.sources.base import SourceAdapter, SourceUnavailable
from intelgate.sources.mock import MockSourceAdapter
from intelgate.sources.registry import build_adapters, close_adapters

__all__ = [
    "MockSourceAdapter",
    "SourceAdapter",
    "SourceUnavailable",
    "build_adapters",
    "close_adapters",
]
