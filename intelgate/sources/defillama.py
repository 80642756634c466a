"""Chain TVL from DefiLlama, matched on the chain's native token symbol."""

from __future__ import annotations

from typing import Any

from intelgate.domain import DataKind
from intelgate.sources.base import SourceUnavailable
from intelgate.sources.http import HttpSourceAdapter

_CHAINS_URL = "https://api.llama.fi/v2/chains"


class DefiLlamaAdapter(HttpSourceAdapter):
    @property
    def kind(self) -> DataKind:
        return DataKind.DEFI

    @property
    def name(self) -> str:
        return "defillama"

    async def _fetch(self, subject: str) -> dict[str, Any]:
        chains = await self._get_json(_CHAINS_URL)
        if not isinstance(chains, list):
            raise SourceUnavailable("unexpected DefiLlama payload")
        matches = [c for c in chains if (c.get("tokenSymbol") or "").upper() == subject]
        if not matches:
            raise SourceUnavailable(f"no chain with native token {subject}")
        chain = max(matches, key=lambda c: c.get("tvl") or 0)
        total_tvl = sum(c.get("tvl") or 0 for c in chains)
        tvl = chain.get("tvl") or 0
        return {
            "symbol": subject,
            "chain": chain.get("name"),
            "tvl": tvl,
            "tvl_share_pct": round(100 * tvl / total_tvl, 3) if total_tvl else None,
        }
