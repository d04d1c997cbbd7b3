from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TimeSeriesPoint:
    date: int  # unix seconds
    value: float


@dataclass(frozen=True)
class StatSummary:
    start_tvl: float
    current_tvl: float
    min_tvl: float
    max_tvl: float
    avg_tvl: float
    volatility: float  # coefficient of variation
    total_change_percent: float


@dataclass(frozen=True)
class AnalysisResult:
    overall: StatSummary
    per_chain: dict[str, StatSummary] | None = None


@dataclass(frozen=True)
class ProtocolRecord:
    """A protocol as returned by DefiLlama's /protocol/{slug} endpoint.

    Only `tvl` and `chain_tvls` feed the analyzer; the rest is identity that
    passes through to ProtocolInfo.
    """

    name: str
    address: str | None = None
    symbol: str | None = None
    description: str | None = None
    category: str | None = None
    url: str | None = None
    logo: str | None = None
    twitter: str | None = None
    listed_at: int | None = None
    chains: tuple[str, ...] = ()
    github: tuple[str, ...] = ()
    audit_links: tuple[str, ...] = ()
    tvl: tuple = ()  # raw points, cleaned by the analyzer
    chain_tvls: dict[str, tuple] = field(default_factory=dict)


@dataclass(frozen=True)
class ProtocolInfo:
    name: str
    address: str | None
    symbol: str | None
    description: str | None
    category: str | None
    url: str | None
    logo: str | None
    twitter: str | None
    listed_at: int | None
    chains: tuple[str, ...] = ()
    github: tuple[str, ...] = ()
    audit_links: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProtocolAnalysis:
    info: ProtocolInfo
    tvl: AnalysisResult
