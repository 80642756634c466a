"""Bitcoin on-chain network statistics (blockchain.info + mempool.space)."""

from __future__ import annotations

import logging
from typing import Any

from intelgate.domain import DataKind
from intelgate.sources.base import SourceUnavailable
from intelgate.sources.http import HttpSourceAdapter

logger = logging.getLogger(__name__)

_STATS_URL = "https://api.blockchain.info/stats"
_MEMPOOL_URL = "https://mempool.space/api/mempool"

SUPPORTED_SUBJECTS = {"BTC"}


class BlockchainStatsAdapter(HttpSourceAdapter):
    @property
    def kind(self) -> DataKind:
        return DataKind.ON_CHAIN

    @property
    def name(self) -> str:
        return "blockchain_info"

    async def _fetch(self, subject: str) -> dict[str, Any]:
        if subject not in SUPPORTED_SUBJECTS:
            raise SourceUnavailable(f"unsupported subject {subject}")
        stats = await self._get_json(_STATS_URL)
        out: dict[str, Any] = {
            "symbol": subject,
            "hash_rate": stats.get("hash_rate"),
            "n_tx": stats.get("n_tx"),
            "difficulty": stats.get("difficulty"),
            "minutes_between_blocks": stats.get("minutes_between_blocks"),
            "total_btc_sent": stats.get("total_btc_sent"),
            "mempool_size": None,
        }
        try:
            mempool = await self._get_json(_MEMPOOL_URL)
            out["mempool_size"] = mempool.get("count")
            out["mempool_vsize"] = mempool.get("vsize")
        except Exception as exc:
            # Partial payload; scores lower instead of failing the kind.
            logger.debug("[blockchain_info] mempool lookup failed: %s", exc)
        return out
