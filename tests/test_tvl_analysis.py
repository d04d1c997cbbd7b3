"""Tests for TVL series cleaning, statistics and protocol analysis."""
import copy
import itertools
import json
import math
import sys

import pytest

from geckolens.analysis.tvl import (
    analyze_chain_series,
    analyze_protocol,
    clean,
    normalize_address,
    protocol_record,
    summarize,
    twitter_url,
)
from geckolens.core.errors import NoValidDataError
from geckolens.core.types import ProtocolRecord, TimeSeriesPoint


SERIES = [
    {"date": 1600000000, "tvl": 1_000_000},
    {"date": 1600086400, "tvl": 1_100_000},
    {"date": 1600172800, "tvl": 900_000},
]


def protocol_payload():
    return {
        "id": "test-protocol",
        "name": "Test Protocol",
        "address": "chain:0x123",
        "symbol": "TEST",
        "url": "https://test.com",
        "description": "Test Description",
        "chain": "ethereum",
        "chains": ["ethereum", "bsc"],
        "logo": "https://test.com/logo.png",
        "category": "DEX",
        "twitter": "testprotocol",
        "audit_links": ["https://audit.com"],
        "listedAt": 1600000000,
        "github": ["org/repo"],
        "currentChainTvls": {"ethereum": 1000000},
        "tvl": [
            {"date": 1600000000, "totalLiquidityUSD": 1000000},
            {"date": 1600086400, "totalLiquidityUSD": 1100000},
            {"date": 1600172800, "totalLiquidityUSD": 900000},
        ],
        "chainTvls": {
            "ethereum": {
                "tvl": [
                    {"date": 1600000000, "totalLiquidityUSD": 600000},
                    {"date": 1600086400, "totalLiquidityUSD": 700000},
                    {"date": 1600172800, "totalLiquidityUSD": 500000},
                ]
            },
            "bsc": {
                "tvl": [
                    {"date": 1600000000, "totalLiquidityUSD": 400000},
                    {"date": 1600086400, "totalLiquidityUSD": 400000},
                    {"date": 1600172800, "totalLiquidityUSD": 400000},
                ]
            },
        },
    }


class TestClean:
    """Point validation and ordering."""

    def test_drops_malformed_points(self):
        raw = [
            {"date": "invalid", "tvl": 1000},
            {"date": 1600000000, "tvl": "invalid"},
            {"date": 1600000001, "tvl": float("nan")},
            {"date": 1600000002, "tvl": float("inf")},
            {"date": float("-inf"), "tvl": 5},
            {"date": None, "tvl": 5},
            {"date": 1600000003},
            {"date": True, "tvl": 5},
            {"date": 1600000004.5, "tvl": 5},
            "garbage",
            None,
            {"date": 1600000005, "tvl": 42},
        ]
        assert clean(raw) == [TimeSeriesPoint(date=1600000005, value=42.0)]

    def test_accepts_numeric_strings_pairs_and_points(self):
        raw = [
            ("1600000002", "3.5"),
            TimeSeriesPoint(date=1600000001, value=2.0),
            {"date": 1600000000.0, "value": "1"},
        ]
        assert clean(raw) == [
            TimeSeriesPoint(date=1600000000, value=1.0),
            TimeSeriesPoint(date=1600000001, value=2.0),
            TimeSeriesPoint(date=1600000002, value=3.5),
        ]

    def test_sorts_by_date(self):
        raw = [SERIES[2], SERIES[0], SERIES[1]]
        assert [p.date for p in clean(raw)] == [1600000000, 1600086400, 1600172800]

    def test_duplicate_dates_keep_input_order(self):
        raw = [
            {"date": 2, "tvl": 20},
            {"date": 1, "tvl": 10},
            {"date": 2, "tvl": 21},
            {"date": 1, "tvl": 11},
        ]
        assert [p.value for p in clean(raw)] == [10, 11, 20, 21]

    def test_empty_and_none(self):
        assert clean([]) == []
        assert clean(None) == []

    def test_does_not_mutate_input(self):
        raw = [SERIES[2], SERIES[0], SERIES[1]]
        before = copy.deepcopy(raw)
        clean(raw)
        assert raw == before

    def test_drops_integers_beyond_float_range(self):
        huge = "1" + "0" * 400
        raw = json.loads(
            "[{\"date\": 1600000000, \"tvl\": " + huge + "},"
            " {\"date\": " + huge + ", \"tvl\": 5},"
            " {\"date\": 1600000001, \"tvl\": 7}]"
        )
        assert clean(raw) == [TimeSeriesPoint(date=1600000001, value=7.0)]


class TestSummarize:
    """Statistics over a cleaned series."""

    def test_literal_scenario(self):
        s = summarize(clean(SERIES))
        assert s.start_tvl == 1_000_000
        assert s.current_tvl == 900_000
        assert s.min_tvl == 900_000
        assert s.max_tvl == 1_100_000
        assert s.avg_tvl == 1_000_000
        assert s.total_change_percent == pytest.approx(-10)

    def test_volatility_is_population_coefficient_of_variation(self):
        s = analyze_chain_series([(1, 1000), (2, 2000), (3, 3000)])
        assert s.avg_tvl == 2000
        expected = math.sqrt(((1000 ** 2) + 0 + (1000 ** 2)) / 3) / 2000
        assert s.volatility == pytest.approx(expected)
        assert s.volatility > 0

    def test_constant_series_has_zero_volatility(self):
        s = analyze_chain_series([(1, 500), (2, 500), (3, 500)])
        assert s.volatility == 0
        assert s.total_change_percent == 0

    def test_zero_average_gives_zero_volatility(self):
        s = analyze_chain_series([(1, -5), (2, 5)])
        assert s.avg_tvl == 0
        assert s.volatility == 0

    def test_zero_baseline_change_is_zero(self):
        s = analyze_chain_series([(1, 0), (2, 1000)])
        assert s.start_tvl == 0
        assert s.total_change_percent == 0
        assert math.isfinite(s.volatility)

    def test_single_point(self):
        s = analyze_chain_series([(1600000000, 123.0)])
        assert s.start_tvl == s.current_tvl == s.min_tvl == s.max_tvl == s.avg_tvl == 123.0
        assert s.volatility == 0
        assert s.total_change_percent == 0

    def test_start_and_current_follow_dates_not_input_order(self):
        s = analyze_chain_series([(3, 30), (1, 10), (2, 20)])
        assert s.start_tvl == 10
        assert s.current_tvl == 30
        assert s.total_change_percent == pytest.approx(200)

    def test_idempotent(self):
        series = [(1, 1.1), (2, 2.2), (3, 3.3), (4, 0.7)]
        assert summarize(clean(series)) == summarize(clean(series))

    def test_permutation_invariant(self):
        series = [(1, 0.1), (2, 0.2), (3, 0.3), (4, 1e9)]
        expected = summarize(clean(series))
        for perm in itertools.permutations(series):
            assert summarize(clean(list(perm))) == expected

    def test_large_values_keep_volatility_in_range(self):
        s = analyze_chain_series([(1, 1e200), (2, 0.0)])
        assert s.avg_tvl == 5e199
        assert s.volatility == pytest.approx(1.0)
        assert s.total_change_percent == pytest.approx(-100)

    def test_sum_beyond_float_range_still_averages(self):
        s = analyze_chain_series([(1, 1e308), (2, 1e308)])
        assert s.avg_tvl == 1e308
        assert s.volatility == 0
        assert s.total_change_percent == 0

    def test_change_percent_is_clamped_to_float_range(self):
        s = analyze_chain_series([(1, -1e308), (2, 1e308)])
        assert math.isfinite(s.total_change_percent)
        assert s.total_change_percent == -sys.float_info.max
        assert s.volatility == 0

    def test_empty_series_raises(self):
        with pytest.raises(NoValidDataError, match="No valid TVL data found for chain"):
            summarize(clean([]))

    def test_all_invalid_raises(self):
        bad = [{"date": "invalid", "tvl": 1000}, {"date": 1600000000, "tvl": "invalid"}]
        with pytest.raises(NoValidDataError) as exc:
            analyze_chain_series(bad)
        assert exc.value.kind == "chain"
        assert exc.value.name is None
        assert str(exc.value) == "No valid TVL data found for chain"


class TestNormalization:
    def test_address_prefix_stripped(self):
        assert normalize_address("chain:0x123") == "0x123"
        assert normalize_address("ethereum:0xabc:extra") == "0xabc:extra"

    def test_plain_or_missing_address_passes_through(self):
        assert normalize_address("0x123") == "0x123"
        assert normalize_address(None) is None

    def test_twitter_handle_becomes_profile_url(self):
        assert twitter_url("testprotocol") == "https://x.com/testprotocol"
        assert twitter_url("@testprotocol") == "https://x.com/testprotocol"
        assert twitter_url("https://x.com/already") == "https://x.com/already"
        assert twitter_url(None) is None


class TestAnalyzeProtocol:
    """Overall and per-chain analysis of a DefiLlama protocol payload."""

    def test_analyzes_protocol_payload(self):
        analysis = analyze_protocol(protocol_payload())

        assert analysis.info.name == "Test Protocol"
        assert analysis.info.address == "0x123"
        assert analysis.info.twitter == "https://x.com/testprotocol"
        assert analysis.info.listed_at == 1600000000
        assert analysis.info.chains == ("ethereum", "bsc")

        overall = analysis.tvl.overall
        assert overall.start_tvl == 1_000_000
        assert overall.current_tvl == 900_000
        assert overall.total_change_percent == pytest.approx(-10)

    def test_per_chain_breakdown(self):
        per_chain = analyze_protocol(protocol_payload()).tvl.per_chain

        assert set(per_chain) == {"ethereum", "bsc"}
        assert per_chain["ethereum"].max_tvl == 700_000
        assert per_chain["ethereum"].current_tvl == 500_000
        assert per_chain["bsc"].volatility == 0

    def test_breakdown_keys_outside_chain_list_are_skipped(self):
        payload = protocol_payload()
        extra = {"tvl": [{"date": 1600000000, "totalLiquidityUSD": 1}]}
        for key in ("borrowed", "staking", "pool2", "ethereum-borrowed"):
            payload["chainTvls"][key] = extra
        per_chain = analyze_protocol(payload).tvl.per_chain
        assert set(per_chain) == {"ethereum", "bsc"}

    def test_without_chain_list_every_key_is_kept(self):
        payload = protocol_payload()
        del payload["chains"]
        assert set(protocol_record(payload).chain_tvls) == {"ethereum", "bsc"}

    def test_no_chain_map_means_no_per_chain(self):
        payload = protocol_payload()
        del payload["chainTvls"]
        assert analyze_protocol(payload).tvl.per_chain is None

    def test_empty_overall_series_names_protocol(self):
        payload = protocol_payload()
        payload.update(address=None, twitter=None, tvl=[], chainTvls={"ethereum": {"tvl": []}})
        with pytest.raises(NoValidDataError, match="No valid TVL data found for protocol Test Protocol"):
            analyze_protocol(payload)

    def test_empty_chain_series_fails_whole_analysis(self):
        payload = protocol_payload()
        payload["chainTvls"]["bsc"]["tvl"] = [{"date": "nope", "totalLiquidityUSD": 1}]
        with pytest.raises(NoValidDataError) as exc:
            analyze_protocol(payload)
        assert exc.value.kind == "chain"
        assert exc.value.name == "bsc"

    def test_accepts_record(self):
        record = ProtocolRecord(name="Solo", tvl=tuple(SERIES))
        analysis = analyze_protocol(record)
        assert analysis.info.address is None
        assert analysis.tvl.overall.avg_tvl == 1_000_000

    def test_protocol_record_ignores_malformed_identity(self):
        record = protocol_record({"name": "", "id": "x", "chains": "eth", "listedAt": "soon", "tvl": "n/a"})
        assert record.name == "x"
        assert record.chains == ()
        assert record.listed_at is None
        assert record.tvl == ()
