from __future__ import annotations

import math
import sys
from collections.abc import Iterable, Mapping
from typing import Any

from geckolens.core.errors import NoValidDataError
from geckolens.core.types import (
    AnalysisResult,
    ProtocolAnalysis,
    ProtocolInfo,
    ProtocolRecord,
    StatSummary,
    TimeSeriesPoint,
)


# DefiLlama uses `totalLiquidityUSD` for protocol series and `tvl` for chain series.
_VALUE_KEYS = ("value", "tvl", "totalLiquidityUSD")

X_PROFILE = "https://x.com/"

_FLOAT_MAX = sys.float_info.max


def _clamp(x: float) -> float:
    # Ratios of extreme finite values can round to +-inf; pin them to the float range.
    return max(-_FLOAT_MAX, min(_FLOAT_MAX, x))


def _as_float(v: Any) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str):
        v = v.strip()
        if not v:
            return None
    try:
        x = float(v)
    except (TypeError, ValueError, OverflowError):
        return None
    return x if math.isfinite(x) else None


def _as_date(v: Any) -> int | None:
    x = _as_float(v)
    if x is None or not x.is_integer():
        return None
    return int(x)


def _split(raw: Any) -> tuple[Any, Any]:
    if isinstance(raw, TimeSeriesPoint):
        return raw.date, raw.value
    if isinstance(raw, Mapping):
        value = None
        for k in _VALUE_KEYS:
            if k in raw:
                value = raw[k]
                break
        return raw.get("date"), value
    if isinstance(raw, (list, tuple)) and len(raw) == 2:
        return raw[0], raw[1]
    return None, None


def to_point(raw: Any) -> TimeSeriesPoint | None:
    """Coerce one raw point, or None if it is malformed."""
    d, v = _split(raw)
    date = _as_date(d)
    value = _as_float(v)
    if date is None or value is None:
        return None
    return TimeSeriesPoint(date=date, value=value)


def clean(series: Iterable[Any] | None) -> list[TimeSeriesPoint]:
    """Drop malformed points and sort the rest by date.

    The sort is stable, so points sharing a date keep their input order.
    """
    out: list[TimeSeriesPoint] = []
    for raw in series or ():
        p = to_point(raw)
        if p is not None:
            out.append(p)
    out.sort(key=lambda p: p.date)
    return out


def summarize(series: list[TimeSeriesPoint], *, kind: str = "chain", name: str | None = None) -> StatSummary:
    """Summary statistics for a cleaned series.

    Volatility is the coefficient of variation using the population standard
    deviation. Sums use math.fsum so results do not depend on point order.
    """
    if not series:
        raise NoValidDataError(kind, name)

    values = [p.value for p in series]
    n = len(values)
    start = values[0]
    current = values[-1]

    try:
        avg = math.fsum(values) / n
    except OverflowError:
        # The sum leaves float range even though the mean cannot.
        avg = math.fsum(v / n for v in values)

    # Dispersion is taken over values scaled into [-1, 1] so squares stay in range.
    scale = max(abs(v) for v in values)
    volatility = 0.0
    if avg != 0 and scale != 0:
        mean = avg / scale
        variance = math.fsum((v / scale - mean) ** 2 for v in values) / n
        volatility = _clamp(math.sqrt(variance) / mean)

    change = _clamp((current - start) / start * 100) if start != 0 else 0.0

    return StatSummary(
        start_tvl=start,
        current_tvl=current,
        min_tvl=min(values),
        max_tvl=max(values),
        avg_tvl=avg,
        volatility=volatility,
        total_change_percent=change,
    )


def analyze_chain_series(series: Iterable[Any] | None) -> StatSummary:
    return summarize(clean(series), kind="chain")


def normalize_address(address: str | None) -> str | None:
    # "ethereum:0xabc" -> "0xabc"
    if not address:
        return address
    _, sep, rest = address.partition(":")
    return rest if sep else address


def twitter_url(handle: str | None) -> str | None:
    if not handle:
        return None
    h = handle.strip()
    if h.startswith(("http://", "https://")):
        return h
    return X_PROFILE + h.lstrip("@")


def protocol_info(record: ProtocolRecord) -> ProtocolInfo:
    return ProtocolInfo(
        name=record.name,
        address=normalize_address(record.address),
        symbol=record.symbol,
        description=record.description,
        category=record.category,
        url=record.url,
        logo=record.logo,
        twitter=twitter_url(record.twitter),
        listed_at=record.listed_at,
        chains=record.chains,
        github=record.github,
        audit_links=record.audit_links,
    )


def analyze_protocol(record: ProtocolRecord | Mapping[str, Any]) -> ProtocolAnalysis:
    """Overall plus per-chain TVL statistics for a protocol.

    Any chain without valid points fails the whole analysis.
    """
    if not isinstance(record, ProtocolRecord):
        record = protocol_record(record)

    overall = summarize(clean(record.tvl), kind="protocol", name=record.name)

    per_chain: dict[str, StatSummary] | None = None
    if record.chain_tvls:
        per_chain = {
            chain: summarize(clean(points), kind="chain", name=chain)
            for chain, points in record.chain_tvls.items()
        }

    return ProtocolAnalysis(
        info=protocol_info(record),
        tvl=AnalysisResult(overall=overall, per_chain=per_chain),
    )


def _str_or_none(v: Any) -> str | None:
    return v if isinstance(v, str) and v else None


def _str_tuple(v: Any) -> tuple[str, ...]:
    if not isinstance(v, list):
        return ()
    return tuple(x for x in v if isinstance(x, str))


def protocol_record(j: Mapping[str, Any]) -> ProtocolRecord:
    """Build a ProtocolRecord from a DefiLlama /protocol/{slug} payload."""
    name = j.get("name")
    chains = _str_tuple(j.get("chains"))
    chain_tvls: dict[str, tuple] = {}
    raw_chains = j.get("chainTvls")
    if isinstance(raw_chains, Mapping):
        for chain, row in raw_chains.items():
            # chainTvls also carries breakdowns such as "borrowed", "staking"
            # and "Ethereum-pool2"; only listed chains are analyzed.
            if chains and chain not in chains:
                continue
            points = row.get("tvl") if isinstance(row, Mapping) else row
            chain_tvls[str(chain)] = tuple(points) if isinstance(points, list) else ()

    tvl = j.get("tvl")
    listed_at = _as_date(j.get("listedAt"))
    return ProtocolRecord(
        name=name if isinstance(name, str) and name else str(j.get("id") or "unknown"),
        address=_str_or_none(j.get("address")),
        symbol=_str_or_none(j.get("symbol")),
        description=_str_or_none(j.get("description")),
        category=_str_or_none(j.get("category")),
        url=_str_or_none(j.get("url")),
        logo=_str_or_none(j.get("logo")),
        twitter=_str_or_none(j.get("twitter")),
        listed_at=listed_at,
        chains=chains,
        github=_str_tuple(j.get("github")),
        audit_links=_str_tuple(j.get("audit_links")),
        tvl=tuple(tvl) if isinstance(tvl, list) else (),
        chain_tvls=chain_tvls,
    )
