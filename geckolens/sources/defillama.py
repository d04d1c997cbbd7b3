from __future__ import annotations

import logging
from typing import Any

import httpx

from geckolens.analysis.tvl import analyze_chain_series, analyze_protocol, protocol_record
from geckolens.core.errors import DefiLlamaError, error_payload
from geckolens.core.types import ProtocolAnalysis, StatSummary


DEFILLAMA = "https://api.llama.fi"


class DefiLlamaClient:
    def __init__(
        self,
        base_url: str = DEFILLAMA,
        *,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self._log = logger or logging.getLogger(__name__)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> DefiLlamaClient:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _get(self, path: str) -> Any:
        self._log.debug("GET %s", path)
        r = await self._client.get(path)
        if r.is_error:
            self._log.error("DefiLlama request to %s failed with status %s", path, r.status_code)
            raise DefiLlamaError(r.status_code, path, error_payload(r))
        return r.json()

    async def chains(self) -> list[dict[str, Any]]:
        j = await self._get("/v2/chains")
        return j if isinstance(j, list) else []

    async def protocols(self) -> list[dict[str, Any]]:
        j = await self._get("/protocols")
        return j if isinstance(j, list) else []

    async def protocol(self, slug: str) -> dict[str, Any]:
        """Full protocol payload including `tvl` and `chainTvls` history."""
        j = await self._get(f"/protocol/{slug}")
        return j if isinstance(j, dict) else {}

    async def historical_chain_tvl(self, chain: str | None = None) -> list[dict[str, Any]]:
        """Daily {date, tvl} points for one chain, or for all chains combined."""
        path = f"/v2/historicalChainTvl/{chain}" if chain else "/v2/historicalChainTvl"
        j = await self._get(path)
        return j if isinstance(j, list) else []


async def protocol_tvl_analysis(client: DefiLlamaClient, slug: str) -> ProtocolAnalysis:
    j = await client.protocol(slug)
    return analyze_protocol(protocol_record(j))


async def chain_tvl_analysis(client: DefiLlamaClient, chain: str) -> StatSummary:
    points = await client.historical_chain_tvl(chain)
    return analyze_chain_series(points)
