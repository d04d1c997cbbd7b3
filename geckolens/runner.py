from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from geckolens import formatters as fmt
from geckolens.analysis.tvl import analyze_chain_series, analyze_protocol
from geckolens.settings import settings
from geckolens.sources.defillama import DefiLlamaClient, chain_tvl_analysis, protocol_tvl_analysis
from geckolens.sources.geckoterminal import (
    GeckoTerminal,
    parse_dexes,
    parse_networks,
    parse_ohlcv,
    parse_pools,
    parse_token_prices,
    parse_tokens,
    parse_trades,
)


console = Console()


def gecko_client() -> GeckoTerminal:
    return GeckoTerminal(
        network=settings.network,
        dex=settings.dex,
        api_key=settings.api_key,
        base_url=settings.base_url,
        api_version=settings.api_version,
        timeout=settings.timeout_seconds,
    )


def llama_client() -> DefiLlamaClient:
    return DefiLlamaClient(settings.defillama_base_url, timeout=settings.timeout_seconds)


def render_rows(title: str, rows: list[dict[str, str]]) -> None:
    if not rows:
        console.log(f"{title}: no results")
        return
    table = Table(title=title)
    for col in rows[0]:
        table.add_column(col.replace("_", " "))
    for row in rows:
        table.add_row(*(row.get(col, "") for col in rows[0]))
    console.print(table)


def render_analysis(formatted: dict[str, Any]) -> None:
    info = formatted.get("protocol_info")
    if info:
        t = Table(title=info["name"], show_header=False)
        t.add_column("field")
        t.add_column("value")
        for k, v in info.items():
            if v:
                t.add_row(k.replace("_", " "), v)
        console.print(t)

    tvl = formatted.get("tvl_analysis") or formatted.get("chain_analysis") or {}
    rows = [{"series": "overall", **tvl["overall"]}]
    for chain, summary in (tvl.get("per_chain") or {}).items():
        rows.append({"series": chain, **summary})
    render_rows("TVL analysis", rows)


async def show_networks(page: int = 1) -> None:
    async with gecko_client() as gt:
        j = await gt.networks(page)
    render_rows("Networks", [fmt.format_network(n) for n in parse_networks(j)])


async def show_dexes(network: str | None = None, page: int = 1) -> None:
    async with gecko_client() as gt:
        j = await gt.network_dexes(network, page)
        title = f"DEXes on {network or gt.network}"
    render_rows(title, [fmt.format_dex(d) for d in parse_dexes(j)])


async def show_pools(
    kind: str = "top", network: str | None = None, dex: str | None = None, duration: str = "24h", page: int = 1
) -> None:
    async with gecko_client() as gt:
        if kind == "trending":
            j = await gt.trending_pools(network, duration, page)  # type: ignore[arg-type]
        elif kind == "new":
            j = await gt.new_pools(network, page)
        else:
            j = await gt.top_pools(network, dex, page)
    render_rows(f"{kind.capitalize()} pools", [fmt.format_pool(p) for p in parse_pools(j)])


async def show_pool(pool_address: str, network: str | None = None) -> None:
    async with gecko_client() as gt:
        j = await gt.pool_info(pool_address, network)
    render_rows("Pool", [fmt.format_pool(p) for p in parse_pools(j)])


async def show_trades(pool_address: str, network: str | None = None, min_volume_usd: float | None = None) -> None:
    async with gecko_client() as gt:
        j = await gt.pool_trades(pool_address, network, min_volume_usd)
    rows = [
        {
            "time": t.ts.strftime("%Y-%m-%d %H:%M:%S") if t.ts else "",
            "kind": t.kind or "",
            "volume": fmt.currency(t.volume_usd),
            "from": t.tx_from_address or "",
            "tx": t.tx_hash,
        }
        for t in parse_trades(j)
    ]
    render_rows("Trades", rows)


async def show_ohlcv(
    pool_address: str,
    timeframe: str = "day",
    network: str | None = None,
    *,
    aggregate: int | None = None,
    limit: int | None = None,
) -> None:
    async with gecko_client() as gt:
        j = await gt.pool_ohlcv(pool_address, timeframe, network, aggregate=aggregate, limit=limit)  # type: ignore[arg-type]
    render_rows(f"OHLCV ({timeframe})", [fmt.format_ohlcv(c) for c in parse_ohlcv(j)])


async def show_token(token_address: str, network: str | None = None) -> None:
    async with gecko_client() as gt:
        info = await gt.token_info(token_address, network)
        pools = await gt.token_pools(token_address, network)
    rows = [
        {
            "name": t.name,
            "symbol": t.symbol,
            "address": t.address,
            "decimals": str(t.decimals) if t.decimals is not None else "",
            "price": fmt.currency(t.price_usd),
        }
        for t in parse_tokens(info)
    ]
    render_rows("Token", rows)
    render_rows("Token pools", [fmt.format_pool(p) for p in parse_pools(pools)])


async def show_prices(addresses: list[str], network: str | None = None) -> None:
    async with gecko_client() as gt:
        j = await gt.simple_token_prices(addresses, network, include_24hr_vol=True, include_market_cap=True)
    render_rows("Token prices", [fmt.format_token_price(t) for t in parse_token_prices(j)])


async def show_search(query: str, network: str | None = None, page: int = 1) -> None:
    async with gecko_client() as gt:
        j = await gt.search_pools(query, network, page)
    render_rows(f"Pools matching {query!r}", [fmt.format_pool(p) for p in parse_pools(j)])


async def show_protocol(slug: str) -> None:
    async with llama_client() as llama:
        analysis = await protocol_tvl_analysis(llama, slug)
    render_analysis(fmt.format_protocol_analysis(analysis))


async def show_chain_tvl(chain: str) -> None:
    async with llama_client() as llama:
        summary = await chain_tvl_analysis(llama, chain)
    render_analysis(fmt.format_chain_tvl_analysis(summary))


def analyze_file(path: str) -> dict[str, Any]:
    """Analyze a saved DefiLlama payload.

    A JSON object is treated as a /protocol/{slug} response, a JSON array as a
    bare {date, tvl} chain series.
    """
    j = json.loads(Path(path).read_text())
    if not isinstance(j, (dict, list)):
        raise ValueError(f"{path}: expected a JSON object or array, got {type(j).__name__}")
    if isinstance(j, list):
        formatted = fmt.format_chain_tvl_analysis(analyze_chain_series(j))
    else:
        formatted = fmt.format_protocol_analysis(analyze_protocol(j))
    render_analysis(formatted)
    return formatted
