"""CLI tests for the offline `analyze` command."""
import json

import pytest
from typer.testing import CliRunner

from geckolens import runner
from geckolens.cli import app


cli = CliRunner()

SERIES = [
    {"date": 1600000000, "tvl": 1000000},
    {"date": 1600086400, "tvl": 1100000},
    {"date": 1600172800, "tvl": 900000},
]


def test_analyze_chain_series_file(tmp_path):
    path = tmp_path / "chain.json"
    path.write_text(json.dumps(SERIES))

    result = cli.invoke(app, ["analyze", str(path)])

    assert result.exit_code == 0, result.output
    assert "TVL analysis" in result.output


def test_analyze_protocol_file(tmp_path):
    path = tmp_path / "protocol.json"
    path.write_text(
        json.dumps(
            {
                "name": "Test Protocol",
                "address": "chain:0x123",
                "tvl": [{"date": p["date"], "totalLiquidityUSD": p["tvl"]} for p in SERIES],
            }
        )
    )

    formatted = runner.analyze_file(str(path))

    assert formatted["protocol_info"]["address"] == "0x123"
    assert formatted["tvl_analysis"]["overall"]["total_change"] == "-10.00%"


def test_analyze_reports_missing_data(tmp_path):
    path = tmp_path / "empty.json"
    path.write_text(json.dumps([{"date": "bad", "tvl": 1}]))

    result = cli.invoke(app, ["analyze", str(path)])

    assert result.exit_code == 1
    assert "No valid TVL data" in result.output


def test_analyze_missing_file(tmp_path):
    result = cli.invoke(app, ["analyze", str(tmp_path / "nope.json")])
    assert result.exit_code == 1


def test_analyze_rejects_scalar_json(tmp_path):
    path = tmp_path / "scalar.json"
    path.write_text("42")

    result = cli.invoke(app, ["analyze", str(path)])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "ERROR" in result.output
    with pytest.raises(ValueError, match="expected a JSON object or array"):
        runner.analyze_file(str(path))
