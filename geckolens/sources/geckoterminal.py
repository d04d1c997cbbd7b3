from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

import httpx

from geckolens.core.errors import GeckoTerminalError, error_payload


GECKOTERMINAL = "https://api.geckoterminal.com/api/v2"
API_VERSION = "20230302"
DEFAULT_NETWORK = "cfx"
DEFAULT_DEX = "swappi"
MAX_ADDRESSES = 30

TrendingDuration = Literal["5m", "1h", "6h", "24h"]
Timeframe = Literal["minute", "hour", "day"]


def _param(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


class GeckoTerminalAPI:
    """Request executor for the GeckoTerminal public API.

    Owns the httpx client, builds the versioned Accept header and optional
    X-API-KEY, and turns non-2xx responses into GeckoTerminalError.
    """

    def __init__(
        self,
        network: str = DEFAULT_NETWORK,
        api_key: str | None = None,
        base_url: str | None = None,
        *,
        api_version: str = API_VERSION,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self.network = network
        self.base_url = (base_url or GECKOTERMINAL).rstrip("/")
        self._log = logger or logging.getLogger(__name__)

        headers = {"Accept": f"application/json;version={api_version}"}
        if api_key:
            headers["X-API-KEY"] = api_key
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GeckoTerminalAPI:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def fetch(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        path = "/" + endpoint.lstrip("/")
        query = {k: _param(v) for k, v in (params or {}).items() if v is not None}

        self._log.debug("GET %s%s params=%s", self.base_url, path, query)
        try:
            r = await self._client.get(path, params=query)
        except httpx.TransportError as e:
            self._log.error("GeckoTerminal request to %s failed: %r", path, e)
            raise

        if r.is_error:
            self._log.error("GeckoTerminal request to %s failed with status %s", path, r.status_code)
            raise GeckoTerminalError(r.status_code, path, error_payload(r))

        self._log.debug("GET %s -> %s", path, r.status_code)
        return r.json()


class GeckoTerminal:
    """GeckoTerminal endpoint client.

    Wraps a GeckoTerminalAPI executor; pass one in to share a connection pool,
    or let the client build its own from the keyword arguments.
    Every method returns the decoded JSON payload; use the parse_* helpers
    below for typed rows.
    """

    def __init__(self, api: GeckoTerminalAPI | None = None, *, dex: str = DEFAULT_DEX, **api_kwargs: Any):
        self.api = api or GeckoTerminalAPI(**api_kwargs)
        self.dex = dex

    @property
    def network(self) -> str:
        return self.api.network

    async def aclose(self) -> None:
        await self.api.aclose()

    async def __aenter__(self) -> GeckoTerminal:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # Networks / DEXes

    async def networks(self, page: int = 1) -> dict[str, Any]:
        return await self.api.fetch("/networks", {"page": page})

    async def network_dexes(self, network: str | None = None, page: int = 1) -> dict[str, Any]:
        network = network or self.network
        return await self.api.fetch(f"/networks/{network}/dexes", {"page": page})

    # Pools

    async def top_pools(self, network: str | None = None, dex: str | None = None, page: int = 1) -> dict[str, Any]:
        network = network or self.network
        dex = dex or self.dex
        return await self.api.fetch(f"/networks/{network}/dexes/{dex}/pools", {"page": page})

    async def trending_pools(
        self, network: str | None = None, duration: TrendingDuration = "24h", page: int = 1
    ) -> dict[str, Any]:
        network = network or self.network
        return await self.api.fetch(f"/networks/{network}/trending_pools", {"duration": duration, "page": page})

    async def new_pools(self, network: str | None = None, page: int = 1) -> dict[str, Any]:
        network = network or self.network
        return await self.api.fetch(f"/networks/{network}/new_pools", {"page": page})

    async def pool_info(self, pool_address: str, network: str | None = None) -> dict[str, Any]:
        network = network or self.network
        return await self.api.fetch(f"/networks/{network}/pools/{pool_address}")

    async def pool_trades(
        self, pool_address: str, network: str | None = None, min_volume_usd: float | None = None
    ) -> dict[str, Any]:
        network = network or self.network
        params = {}
        if min_volume_usd:
            params["trade_volume_in_usd_greater_than"] = min_volume_usd
        return await self.api.fetch(f"/networks/{network}/pools/{pool_address}/trades", params)

    async def pool_tokens_info(self, pool_address: str, network: str | None = None) -> dict[str, Any]:
        network = network or self.network
        return await self.api.fetch(f"/networks/{network}/pools/{pool_address}/info")

    async def multi_pool_info(self, pool_addresses: list[str], network: str | None = None) -> dict[str, Any]:
        network = network or self.network
        return await self.api.fetch(f"/networks/{network}/pools/multi/{','.join(pool_addresses)}")

    async def pool_ohlcv(
        self,
        pool_address: str,
        timeframe: Timeframe = "day",
        network: str | None = None,
        *,
        aggregate: int | None = None,
        before_timestamp: int | None = None,
        limit: int | None = None,
        currency: Literal["usd", "token"] | None = None,
        token: str | None = None,  # "base", "quote" or a token address
    ) -> dict[str, Any]:
        network = network or self.network
        return await self.api.fetch(
            f"/networks/{network}/pools/{pool_address}/ohlcv/{timeframe}",
            {
                "aggregate": aggregate,
                "before_timestamp": before_timestamp,
                "limit": limit,
                "currency": currency,
                "token": token,
            },
        )

    # Tokens

    async def token_info(self, token_address: str, network: str | None = None) -> dict[str, Any]:
        network = network or self.network
        return await self.api.fetch(f"/networks/{network}/tokens/{token_address}")

    async def token_pools(self, token_address: str, network: str | None = None, page: int = 1) -> dict[str, Any]:
        network = network or self.network
        return await self.api.fetch(f"/networks/{network}/tokens/{token_address}/pools", {"page": page})

    async def multi_token_info(self, token_addresses: list[str], network: str | None = None) -> dict[str, Any]:
        network = network or self.network
        if len(token_addresses) > MAX_ADDRESSES:
            raise ValueError(f"Maximum of {MAX_ADDRESSES} token addresses allowed per request")
        return await self.api.fetch(f"/networks/{network}/tokens/multi/{','.join(token_addresses)}")

    async def simple_token_prices(
        self,
        addresses: list[str],
        network: str | None = None,
        *,
        include_24hr_vol: bool = False,
        include_market_cap: bool = False,
    ) -> dict[str, Any]:
        network = network or self.network
        if len(addresses) > MAX_ADDRESSES:
            raise ValueError(f"Maximum of {MAX_ADDRESSES} addresses allowed per request")
        return await self.api.fetch(
            f"/simple/networks/{network}/token_price/{','.join(addresses)}",
            {"include_24hr_vol": include_24hr_vol, "include_market_cap": include_market_cap},
        )

    # Search

    async def search_pools(self, query: str, network: str | None = None, page: int = 1) -> dict[str, Any]:
        return await self.api.fetch("/search/pools", {"query": query, "network": network, "page": page})


# Typed rows


@dataclass(frozen=True)
class Network:
    id: str
    name: str
    identifier: str
    description: str | None = None
    logo_url: str | None = None
    is_mainnet: bool | None = None


@dataclass(frozen=True)
class Dex:
    id: str
    name: str
    identifier: str
    description: str | None = None
    logo_url: str | None = None
    website: str | None = None


@dataclass(frozen=True)
class TxCount:
    buys: int
    sells: int

    @property
    def total(self) -> int:
        return self.buys + self.sells


@dataclass(frozen=True)
class Pool:
    id: str
    address: str
    name: str
    created_at: datetime | None
    reserve_usd: float | None
    base_token_price_usd: float | None
    quote_token_price_usd: float | None
    base_token_price_native: float | None
    volume_usd_24h: float | None
    price_change_24h: float | None
    transactions_24h: TxCount | None
    base_token_id: str | None = None
    quote_token_id: str | None = None
    dex_id: str | None = None


@dataclass(frozen=True)
class Token:
    id: str
    address: str
    name: str
    symbol: str
    decimals: int | None
    price_usd: float | None
    total_supply: float | None


@dataclass(frozen=True)
class Trade:
    id: str
    block_number: int | None
    ts: datetime | None
    tx_hash: str
    tx_from_address: str | None
    kind: str | None  # buy | sell
    from_token_amount: float | None
    to_token_amount: float | None
    volume_usd: float | None
    from_token_address: str | None
    to_token_address: str | None


@dataclass(frozen=True)
class Candle:
    open_time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class TokenPrice:
    address: str
    price_usd: float
    volume_24h_usd: float | None = None
    market_cap_usd: float | None = None


def _num(v: Any) -> float | None:
    # GeckoTerminal sends most numbers as strings.
    if v is None or isinstance(v, bool):
        return None
    try:
        x = float(v)
    except (TypeError, ValueError, OverflowError):
        return None
    return x if math.isfinite(x) else None


def _int(v: Any) -> int | None:
    x = _num(v)
    return int(x) if x is not None else None


def _ts(v: Any) -> datetime | None:
    if not isinstance(v, str):
        return None
    try:
        return datetime.fromisoformat(v.replace("Z", "+00:00")).astimezone(timezone.utc)
    except ValueError:
        return None


def _rows(j: Any) -> list[dict[str, Any]]:
    data = j.get("data") if isinstance(j, dict) else None
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        return []
    return [row for row in data if isinstance(row, dict) and isinstance(row.get("attributes"), dict)]


def _dict(v: Any) -> dict[str, Any]:
    return v if isinstance(v, dict) else {}


def _h24(a: dict[str, Any], key: str) -> Any:
    return _dict(a.get(key)).get("h24")


def _rel_id(row: dict[str, Any], name: str) -> str | None:
    try:
        rid = row["relationships"][name]["data"]["id"]
    except (KeyError, TypeError):
        return None
    return rid if isinstance(rid, str) else None


def parse_networks(j: Any) -> list[Network]:
    out: list[Network] = []
    for row in _rows(j):
        a = row["attributes"]
        name = a.get("name")
        if not isinstance(name, str):
            continue
        out.append(
            Network(
                id=str(row.get("id")),
                name=name,
                identifier=str(a.get("identifier") or row.get("id")),
                description=a.get("description"),
                logo_url=a.get("logo_url"),
                is_mainnet=a.get("is_mainnet"),
            )
        )
    return out


def parse_dexes(j: Any) -> list[Dex]:
    out: list[Dex] = []
    for row in _rows(j):
        a = row["attributes"]
        name = a.get("name")
        if not isinstance(name, str):
            continue
        out.append(
            Dex(
                id=str(row.get("id")),
                name=name,
                identifier=str(a.get("identifier") or row.get("id")),
                description=a.get("description"),
                logo_url=a.get("logo_url"),
                website=a.get("website"),
            )
        )
    return out


def parse_pools(j: Any) -> list[Pool]:
    out: list[Pool] = []
    for row in _rows(j):
        a = row["attributes"]
        address = a.get("address")
        name = a.get("name")
        if not (isinstance(address, str) and isinstance(name, str)):
            continue

        tx = None
        h24 = _h24(a, "transactions")
        if isinstance(h24, dict):
            tx = TxCount(buys=_int(h24.get("buys")) or 0, sells=_int(h24.get("sells")) or 0)

        out.append(
            Pool(
                id=str(row.get("id")),
                address=address,
                name=name,
                created_at=_ts(a.get("pool_created_at")),
                reserve_usd=_num(a.get("reserve_in_usd")),
                base_token_price_usd=_num(a.get("base_token_price_usd")),
                quote_token_price_usd=_num(a.get("quote_token_price_usd")),
                base_token_price_native=_num(a.get("base_token_price_native_currency")),
                volume_usd_24h=_num(_h24(a, "volume_usd")),
                price_change_24h=_num(_h24(a, "price_change_percentage")),
                transactions_24h=tx,
                base_token_id=_rel_id(row, "base_token"),
                quote_token_id=_rel_id(row, "quote_token"),
                dex_id=_rel_id(row, "dex"),
            )
        )
    return out


def parse_tokens(j: Any) -> list[Token]:
    out: list[Token] = []
    for row in _rows(j):
        a = row["attributes"]
        address = a.get("address")
        if not isinstance(address, str):
            continue
        out.append(
            Token(
                id=str(row.get("id")),
                address=address,
                name=str(a.get("name") or ""),
                symbol=str(a.get("symbol") or ""),
                decimals=_int(a.get("decimals")),
                price_usd=_num(a.get("price_usd")),
                total_supply=_num(a.get("total_supply")),
            )
        )
    return out


def parse_trades(j: Any) -> list[Trade]:
    out: list[Trade] = []
    for row in _rows(j):
        a = row["attributes"]
        tx_hash = a.get("tx_hash")
        if not isinstance(tx_hash, str):
            continue
        out.append(
            Trade(
                id=str(row.get("id")),
                block_number=_int(a.get("block_number")),
                ts=_ts(a.get("block_timestamp")),
                tx_hash=tx_hash,
                tx_from_address=a.get("tx_from_address"),
                kind=a.get("kind"),
                from_token_amount=_num(a.get("from_token_amount")),
                to_token_amount=_num(a.get("to_token_amount")),
                volume_usd=_num(a.get("volume_in_usd")),
                from_token_address=a.get("from_token_address"),
                to_token_address=a.get("to_token_address"),
            )
        )
    return out


def parse_ohlcv(j: Any) -> list[Candle]:
    """Candles from an OHLCV payload, oldest first.

    GeckoTerminal returns `ohlcv_list` rows as [ts, open, high, low, close, volume].
    """
    rows: list[Any] = []
    for r in _rows(j):
        lst = r["attributes"].get("ohlcv_list")
        if isinstance(lst, list):
            rows.extend(lst)

    out: list[Candle] = []
    for row in rows:
        if isinstance(row, dict):
            row = [row.get(k) for k in ("timestamp", "open", "high", "low", "close", "volume")]
        if not (isinstance(row, (list, tuple)) and len(row) >= 6):
            continue
        ts = _num(row[0])
        o, h, l, c, v = (_num(x) for x in row[1:6])
        if ts is None or None in (o, h, l, c):
            continue
        out.append(
            Candle(
                open_time=datetime.fromtimestamp(ts, tz=timezone.utc),
                open=o,
                high=h,
                low=l,
                close=c,
                volume=v or 0.0,
            )
        )
    out.sort(key=lambda c: c.open_time)
    return out


def parse_token_prices(j: Any) -> list[TokenPrice]:
    data = j.get("data") if isinstance(j, dict) else None
    if not isinstance(data, dict):
        return []

    attrs = data.get("attributes")
    out: list[TokenPrice] = []
    if isinstance(attrs, dict):
        prices = _dict(attrs.get("token_prices"))
        vols = _dict(attrs.get("h24_volume_usd"))
        mcaps = _dict(attrs.get("market_cap_usd"))
        for address, px in prices.items():
            price = _num(px)
            if price is None:
                continue
            out.append(
                TokenPrice(
                    address=address,
                    price_usd=price,
                    volume_24h_usd=_num(vols.get(address)),
                    market_cap_usd=_num(mcaps.get(address)),
                )
            )
        return out

    # Flat shape: {address: {price_usd, volume_24h, market_cap}}
    for address, row in data.items():
        if not isinstance(row, dict):
            continue
        price = _num(row.get("price_usd"))
        if price is None:
            continue
        out.append(
            TokenPrice(
                address=address,
                price_usd=price,
                volume_24h_usd=_num(row.get("volume_24h")),
                market_cap_usd=_num(row.get("market_cap")),
            )
        )
    return out
