from __future__ import annotations

import json
from datetime import date

import pytest

from filing_valuation.domain.models.facts import entries_for, parse_fact_map
from filing_valuation.infrastructure.data_providers.local_files import (
    FactStoreError,
    JsonFactStore,
    JsonQuoteStore,
    QuoteStoreError,
    quote_from_options,
)

COMPANY_FACTS = {
    "cik": 320193,
    "entityName": "Example Inc.",
    "facts": {
        "dei": {
            "EntityCommonStockSharesOutstanding": {
                "units": {"shares": [{"end": "2024-10-18", "val": 15_115_823_000, "fy": 2024, "fp": "FY", "form": "10-K"}]}
            }
        },
        "us-gaap": {
            "Revenues": {
                "label": "Revenues",
                "units": {
                    "USD": [
                        {
                            "start": "2023-10-01",
                            "end": "2024-09-28",
                            "val": 391_035_000_000,
                            "accn": "0000320193-24-000123",
                            "fy": 2024,
                            "fp": "FY",
                            "form": "10-K",
                            "filed": "2024-11-01",
                            "frame": "CY2024",
                        },
                        {"start": "2023-10-01", "end": "2024-09-28", "fy": 2024, "fp": "FY", "form": "10-K"},
                    ]
                },
            }
        },
    },
}


def test_fact_store_reads_companyfacts(tmp_path):
    (tmp_path / "EXM.json").write_text(json.dumps(COMPANY_FACTS), encoding="utf-8")

    facts = JsonFactStore(tmp_path).fetch("exm")

    revenue = entries_for(facts, "Revenues", "USD")
    assert len(revenue) == 1  # row without a value is dropped
    entry = revenue[0]
    assert entry.value == 391_035_000_000
    assert entry.period_start == date(2023, 10, 1)
    assert entry.filed == date(2024, 11, 1)
    assert entry.frame == "CY2024"
    assert entry.is_annual_span and entry.is_annual_filing
    assert entries_for(facts, "EntityCommonStockSharesOutstanding", "shares")[0].is_instant
    assert entries_for(facts, "Missing", "USD") == []


def test_fact_store_errors(tmp_path):
    store = JsonFactStore(tmp_path)
    with pytest.raises(FactStoreError):
        store.fetch("NOPE")

    (tmp_path / "BAD.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(FactStoreError):
        store.fetch("BAD")


def test_parse_flat_concept_map_and_first_taxonomy_wins():
    flat = parse_fact_map({"Assets": {"units": {"USD": [{"end": "2024-12-31", "val": 5}]}}})
    assert entries_for(flat, "Assets", "USD")[0].value == 5.0

    layered = parse_fact_map(
        {
            "us-gaap": {"Assets": {"units": {"USD": [{"end": "2024-12-31", "val": 1}]}}},
            "ifrs-full": {"Assets": {"units": {"USD": [{"end": "2024-12-31", "val": 2}]}}},
        }
    )
    assert [e.value for e in entries_for(layered, "Assets", "USD")] == [1.0]


def test_quote_store(tmp_path):
    path = tmp_path / "quotes.json"
    path.write_text(
        json.dumps({"EXM": {"price": 150, "shares_outstanding": 1e9, "pe_ratio": 25.5}, "NOPRICE": {"price": None}}),
        encoding="utf-8",
    )
    store = JsonQuoteStore(path)

    quote = store.fetch("exm")

    assert quote.symbol == "EXM"
    assert quote.price == 150.0
    assert quote.shares_outstanding == 1e9
    assert quote.pe_ratio == 25.5
    assert quote.peg_ratio is None
    with pytest.raises(QuoteStoreError):
        store.fetch("NOPRICE")
    with pytest.raises(QuoteStoreError):
        store.fetch("OTHER")


def test_quote_from_options():
    assert quote_from_options("exm", price=None, shares_outstanding=10.0) is None

    quote = quote_from_options("exm", price=12.5, shares_outstanding=10.0, pe_ratio=None)

    assert quote is not None
    assert quote.symbol == "EXM" and quote.price == 12.5 and quote.shares_outstanding == 10.0
