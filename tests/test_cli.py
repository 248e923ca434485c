from __future__ import annotations

import json

from typer.testing import CliRunner

from filing_valuation.cli.commands import app

runner = CliRunner()


def _env(tmp_path, monkeypatch):
    monkeypatch.setenv("FILING_FACTS_DIR", str(tmp_path / "facts"))
    monkeypatch.setenv("FILING_QUOTES_FILE", str(tmp_path / "quotes.json"))
    monkeypatch.setenv("FILING_OUTPUT_DIR", str(tmp_path / "out"))


def test_plan_lists_stages(tmp_path, monkeypatch):
    _env(tmp_path, monkeypatch)

    result = runner.invoke(app, ["plan"])

    assert result.exit_code == 0
    assert "load_facts" in result.output


def test_value_without_quote_exits_with_error(tmp_path, monkeypatch):
    _env(tmp_path, monkeypatch)

    result = runner.invoke(app, ["value", "NOPE"])

    assert result.exit_code == 1


def test_value_with_price_saves_state(tmp_path, monkeypatch):
    _env(tmp_path, monkeypatch)
    facts_dir = tmp_path / "facts"
    facts_dir.mkdir()
    row = {"start": "2023-01-01", "end": "2023-12-31", "fy": 2023, "fp": "FY", "form": "10-K"}
    payload = {"facts": {"us-gaap": {"Revenues": {"units": {"USD": [dict(row, val=1e9)]}}}}}
    (facts_dir / "EXM.json").write_text(json.dumps(payload), encoding="utf-8")

    result = runner.invoke(app, ["value", "EXM", "--price", "10", "--shares", "1e8", "--save"])

    assert result.exit_code == 0
    assert (tmp_path / "out" / "EXM_state.json").exists()


def test_statements_unknown_type(tmp_path, monkeypatch):
    _env(tmp_path, monkeypatch)

    result = runner.invoke(app, ["--facts-dir", str(tmp_path), "statements", "EXM", "--type", "equity"])

    assert result.exit_code == 2


def test_statements_table_from_facts_dir_option(tmp_path, monkeypatch):
    _env(tmp_path, monkeypatch)
    row = {"start": "2023-01-01", "end": "2023-12-31", "fy": 2023, "fp": "FY", "form": "10-K"}
    payload = {"facts": {"us-gaap": {"Revenues": {"units": {"USD": [dict(row, val=2e9)]}}}}}
    (tmp_path / "EXM.json").write_text(json.dumps(payload), encoding="utf-8")

    result = runner.invoke(app, ["--facts-dir", str(tmp_path), "statements", "exm"])

    assert result.exit_code == 0
    assert "EXM income" in result.output


def test_batch_reports_each_symbol(tmp_path, monkeypatch):
    _env(tmp_path, monkeypatch)
    (tmp_path / "quotes.json").write_text(json.dumps({"EXM": {"price": 10.0, "shares_outstanding": 1e8}}), encoding="utf-8")

    result = runner.invoke(app, ["batch", "EXM", "MISS"])

    assert result.exit_code == 0
    assert "Batch Valuation" in result.output


def test_value_compares_pe_with_sector_median(tmp_path, monkeypatch):
    _env(tmp_path, monkeypatch)
    facts_dir = tmp_path / "facts"
    facts_dir.mkdir()
    row = {"start": "2023-01-01", "end": "2023-12-31", "fy": 2023, "fp": "FY", "form": "10-K"}
    payload = {"facts": {"us-gaap": {"Revenues": {"units": {"USD": [dict(row, val=1e9)]}}}}}
    (facts_dir / "EXM.json").write_text(json.dumps(payload), encoding="utf-8")

    result = runner.invoke(
        app, ["value", "EXM", "--price", "10", "--shares", "1e8", "--pe", "30", "--sector", "Technology"]
    )

    assert result.exit_code == 0
    assert "P/E vs Technology median 25.0: 120" in result.output
