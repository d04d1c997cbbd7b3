"""Human-readable rendering of API rows and TVL analysis results.

Everything here returns strings (or dicts of strings) for display. The
analyzer itself never formats; it only hands numbers to these helpers.
"""
from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import date as Date, datetime, timezone
from typing import Any

from geckolens.analysis.tvl import analyze_chain_series, analyze_protocol
from geckolens.core.types import ProtocolAnalysis, ProtocolRecord, StatSummary
from geckolens.sources.geckoterminal import Candle, Dex, Network, Pool, TokenPrice


_COMPACT_UNITS = ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K"))

_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def _to_float(v: Any) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        x = float(v)
    except (TypeError, ValueError, OverflowError):
        return None
    return x if math.isfinite(x) else None


def number(num: float | str | None) -> str:
    """Grouped number with at most two decimals: 1234.5 -> '1,234.5'."""
    value = _to_float(num)
    if not value:
        return "0"
    s = f"{value:,.2f}"
    return s.rstrip("0").rstrip(".") if "." in s else s


def currency(num: float | str | None) -> str:
    value = _to_float(num)
    if not value:
        return "$0.00"
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def percentage(num: float | str | None) -> str:
    value = _to_float(num)
    if not value:
        return "0%"
    return f"{value:.2f}%"


def date(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def compact_currency(value: float) -> str:
    """$1.23K / $1.23M / $1.23B / $1.23T, sign in front of the dollar."""
    if value == 0:
        return "$0"
    sign = "-" if value < 0 else ""
    v = abs(value)

    body = f"{v:,.2f}"
    for i, (size, suffix) in enumerate(_COMPACT_UNITS):
        if v >= size:
            scaled = f"{v / size:.2f}"
            # 999.999K rounds to 1000.00K; promote to the next unit.
            if scaled == "1000.00" and i > 0:
                size, suffix = _COMPACT_UNITS[i - 1]
                scaled = f"{v / size:.2f}"
            body = scaled + suffix
            break
    else:
        if f"{v:.2f}" == "1000.00":
            body = "1.00K"
    return f"{sign}${body}"


def month_year(d: Date | datetime) -> str:
    return f"{_MONTHS[d.month - 1]} {d.year}"


def change_percent(value: float) -> str:
    formatted = f"{value:.2f}%"
    return f"+{formatted}" if value >= 0 else formatted


def volatility(value: float) -> str:
    if value < 0.1:
        return "Very Low"
    if value < 0.25:
        return "Low"
    if value < 0.5:
        return "Moderate"
    if value < 1:
        return "High"
    return "Very High"


# API rows


def _bare_address(token_id: str | None) -> str:
    # Relationship ids look like "<network>_<address>".
    if not token_id:
        return ""
    _, sep, rest = token_id.partition("_")
    return rest if sep else token_id


def format_network(n: Network) -> dict[str, str]:
    return {
        "name": n.name,
        "identifier": n.identifier,
        "description": n.description or "",
        "mainnet": "yes" if n.is_mainnet else "no",
    }


def format_dex(d: Dex) -> dict[str, str]:
    return {
        "name": d.name,
        "identifier": d.identifier,
        "website": d.website or "",
    }


def format_pool(p: Pool) -> dict[str, str]:
    tx = p.transactions_24h
    return {
        "name": p.name,
        "price": currency(p.base_token_price_usd),
        "volume_24h": compact_currency(p.volume_usd_24h or 0.0),
        "trades_24h": f"{tx.total} ({tx.buys} buys / {tx.sells} sells)" if tx else "0",
        "price_change_24h": change_percent(p.price_change_24h or 0.0),
        "reserve_usd": compact_currency(p.reserve_usd or 0.0),
        "pool_address": p.address,
        "base_token_address": _bare_address(p.base_token_id),
        "quote_token_address": _bare_address(p.quote_token_id),
        "created_at": p.created_at.strftime("%Y-%m-%d %H:%M:%S UTC") if p.created_at else "",
    }


def format_ohlcv(c: Candle) -> dict[str, str]:
    return {
        "datetime": c.open_time.strftime("%Y-%m-%d %H:%M:%S UTC"),
        "open": currency(c.open),
        "high": currency(c.high),
        "low": currency(c.low),
        "close": currency(c.close),
        "volume": compact_currency(c.volume),
    }


def format_token_price(t: TokenPrice) -> dict[str, str]:
    return {
        "address": t.address,
        "price_usd": currency(t.price_usd),
        "volume_24h": compact_currency(t.volume_24h_usd) if t.volume_24h_usd is not None else "",
        "market_cap": compact_currency(t.market_cap_usd) if t.market_cap_usd is not None else "",
    }


# TVL analysis


def format_stat_summary(s: StatSummary) -> dict[str, str]:
    return {
        "start_tvl": compact_currency(s.start_tvl),
        "current_tvl": compact_currency(s.current_tvl),
        "min_tvl": compact_currency(s.min_tvl),
        "max_tvl": compact_currency(s.max_tvl),
        "avg_tvl": compact_currency(s.avg_tvl),
        "total_change": change_percent(s.total_change_percent),
        "volatility": volatility(s.volatility),
    }


def format_protocol_analysis(analysis: ProtocolAnalysis | ProtocolRecord | Mapping[str, Any]) -> dict[str, Any]:
    """Display-ready view of a protocol analysis.

    Accepts a finished ProtocolAnalysis, or a raw protocol payload/record
    which is analyzed first.
    """
    if not isinstance(analysis, ProtocolAnalysis):
        analysis = analyze_protocol(analysis)

    info = analysis.info
    tvl = analysis.tvl
    out: dict[str, Any] = {
        "protocol_info": {
            "name": info.name,
            "symbol": info.symbol or "",
            "address": info.address or "",
            "category": info.category or "",
            "chains": ", ".join(info.chains),
            "url": info.url or "",
            "twitter": info.twitter or "",
            "listed": date(info.listed_at) if info.listed_at is not None else "",
            "description": info.description or "",
        },
        "tvl_analysis": {"overall": format_stat_summary(tvl.overall)},
    }
    if tvl.per_chain:
        out["tvl_analysis"]["per_chain"] = {
            chain: format_stat_summary(s) for chain, s in tvl.per_chain.items()
        }
    return out


def format_chain_tvl_analysis(series: StatSummary | Iterable[Any]) -> dict[str, Any]:
    summary = series if isinstance(series, StatSummary) else analyze_chain_series(series)
    return {"chain_analysis": {"overall": format_stat_summary(summary)}}
