"""End-to-end reconstruction from a companyfacts-shaped document."""
from __future__ import annotations

from datetime import date

import pytest

from filing_valuation.domain.models.facts import parse_fact_map
from filing_valuation.domain.services.reconstruction import StatementReconstructor


def _row(start, end, val, fp, form, fy=2023):
    row = {"end": end, "val": val, "fy": fy, "fp": fp, "form": form, "filed": f"{fy + 1}-02-01"}
    if start:
        row["start"] = start
    return row


def make_fact_map():
    revenue = [
        _row("2022-01-01", "2022-12-31", 800.0, "FY", "10-K", fy=2022),
        _row("2023-01-01", "2023-12-31", 1000.0, "FY", "10-K"),
        _row("2023-01-01", "2023-03-31", 200.0, "Q1", "10-Q"),
        _row("2023-04-01", "2023-06-30", 250.0, "Q2", "10-Q"),
        _row("2023-01-01", "2023-06-30", 450.0, "Q2", "10-Q"),
        _row("2023-01-01", "2023-09-30", 750.0, "Q3", "10-Q"),
    ]
    assets = [
        _row(None, "2023-12-31", 5000.0, "FY", "10-K"),
        _row(None, "2023-06-30", 4800.0, "Q2", "10-Q"),
        # Prior year-end comparative carried in the Q2 filing.
        _row(None, "2022-12-31", 4500.0, "Q2", "10-Q"),
    ]
    return parse_fact_map(
        {
            "cik": 1,
            "entityName": "Example Corp",
            "facts": {
                "us-gaap": {
                    "Revenues": {"units": {"USD": revenue}},
                    "Assets": {"units": {"USD": assets}},
                }
            },
        }
    )


def test_reconstruct_derives_discrete_quarters_q4_and_ttm():
    statements = StatementReconstructor().reconstruct("EXM", make_fact_map())

    income = statements.income
    assert [r.fiscal_year for r in income.annual] == [2023, 2022]
    assert [(r.fiscal_quarter, r.values["revenue"]) for r in income.quarterly] == [
        (4, 250.0),
        (3, 300.0),
        (2, 250.0),
        (1, 200.0),
    ]
    assert income.quarterly[0].derived
    assert income.quality_issues == []
    assert income.ttm is not None
    assert income.ttm.values["revenue"] == pytest.approx(1000.0)
    assert income.ttm.date == date(2023, 12, 31)


def test_reconstruct_balance_sheet_filters_comparatives_and_copies_q4():
    balance = StatementReconstructor().reconstruct("EXM", make_fact_map()).balance

    assert [(r.fiscal_year, r.fiscal_quarter) for r in balance.quarterly] == [(2023, 4), (2023, 2)]
    assert balance.quarterly[0].values == balance.annual[0].values
    assert balance.ttm is None


def test_reconstruct_missing_statement_is_empty_not_an_error():
    statements = StatementReconstructor().reconstruct("EXM", make_fact_map())

    assert statements.cash_flow.is_empty()
    assert statements.cash_flow.ttm is None
    assert not statements.is_empty()


def test_reconstruct_caps_history():
    statements = StatementReconstructor(annual_limit=1, quarterly_limit=2).reconstruct("EXM", make_fact_map())

    assert [r.fiscal_year for r in statements.income.annual] == [2023]
    assert [r.fiscal_quarter for r in statements.income.quarterly] == [4, 3]
    # TTM is computed before the cap.
    assert statements.income.ttm is not None


def test_reconstruct_empty_fact_map():
    statements = StatementReconstructor().reconstruct("EMPTY", {})

    assert statements.is_empty()
    assert statements.to_dict()["income"]["annual"] == []


def _fifty_two_week_map(framed):
    older = _row("2021-01-03", "2022-01-01", 400.0, "FY", "10-K", fy=2021)
    newer = _row("2022-01-02", "2022-12-31", 450.0, "FY", "10-K", fy=2022)
    if framed:
        older["frame"] = "CY2021"
        newer["frame"] = "CY2022"
    return parse_fact_map({"Revenues": {"units": {"USD": [older, newer]}}})


@pytest.mark.parametrize("framed", [True, False])
def test_reconstruct_keeps_both_years_ending_in_same_calendar_year(framed):
    annual = StatementReconstructor().reconstruct("WK", _fifty_two_week_map(framed)).income.annual

    assert [(r.fiscal_year, r.date, r.values["revenue"]) for r in annual] == [
        (2022, date(2022, 12, 31), 450.0),
        (2021, date(2022, 1, 1), 400.0),
    ]
