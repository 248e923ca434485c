from __future__ import annotations

from typing import Optional

import pytest

from filing_valuation.domain.models.valuation import (
    FAIR,
    HIGH,
    LOW,
    MEDIUM,
    OVERVALUED,
    UNDERVALUED,
    FinancialsSummary,
    GrowthOverrides,
    HistoricalMultiples,
    ManualOverrides,
    Quote,
    ValuationConfig,
    ValuationResult,
)
from filing_valuation.domain.services.valuation import MANUAL, ValuationEngine

METHODS = [
    "DCF-20",
    "DFCF-20",
    "DNI-20",
    "DFCF-Terminal",
    "Mean P/S",
    "Mean P/E",
    "Mean P/B",
    "PSG Ratio",
    "PEG Ratio",
]


def _quote(price: float = 150.0, shares: float = 1e9, **kwargs) -> Quote:
    return Quote(symbol="TEST", price=price, shares_outstanding=shares, **kwargs)


def _result(value: float, confidence: str, missing: Optional[str] = None) -> ValuationResult:
    return ValuationResult(method=f"m{value}", value=value, confidence=confidence, description="", missing_data=missing)


def test_all_nine_methods_present_without_data():
    valuation = ValuationEngine().run(_quote(), FinancialsSummary())

    assert [v.method for v in valuation.valuations] == METHODS
    assert all(v.confidence == LOW for v in valuation.valuations)
    assert all(v.missing_data for v in valuation.valuations)
    # Nothing valid to average: the current price stands in.
    assert valuation.average_intrinsic_value == 150.0
    assert valuation.recommendation == FAIR


def test_weighted_aggregation():
    engine = ValuationEngine()
    results = [_result(100.0, HIGH), _result(120.0, MEDIUM), _result(80.0, LOW)]

    average, upside, recommendation = engine.aggregate(results, 100.0)

    assert average == pytest.approx(620.0 / 6.0)
    assert upside == pytest.approx(3.333, abs=1e-3)
    assert recommendation == FAIR


def test_aggregation_skips_methods_with_missing_data():
    engine = ValuationEngine()
    results = [
        _result(100.0, HIGH),
        _result(120.0, MEDIUM),
        _result(80.0, LOW),
        _result(0.0, LOW, missing="Free Cash Flow required"),
    ]

    average, _, _ = engine.aggregate(results, 100.0)

    assert average == pytest.approx(103.333, abs=1e-3)


def test_recommendation_thresholds():
    engine = ValuationEngine()

    assert engine.aggregate([_result(130.0, HIGH)], 100.0)[2] == UNDERVALUED
    assert engine.aggregate([_result(70.0, HIGH)], 100.0)[2] == OVERVALUED
    assert engine.aggregate([_result(120.0, HIGH)], 100.0)[2] == FAIR


def test_dfcf_scenario_is_undervalued():
    engine = ValuationEngine()
    summary = FinancialsSummary(free_cashflow=15e9, fcf_growth=0.08)

    valuation = engine.run(_quote(), summary)
    dfcf = valuation.method("DFCF-20")

    assert dfcf is not None
    assert dfcf.value == pytest.approx(216.94, rel=1e-3)
    assert dfcf.confidence == HIGH and dfcf.missing_data is None
    assert engine.aggregate([dfcf], 150.0)[2] == UNDERVALUED
    assert dfcf.steps[-1].result == pytest.approx(dfcf.value)


def test_growth_overrides_replace_the_growth_path():
    engine = ValuationEngine()
    summary = FinancialsSummary(free_cashflow=15e9)
    growth = GrowthOverrides(growth_1_to_5=0.08, growth_6_to_10=0.06, growth_11_to_20=0.04, discount_rate=0.10)

    dfcf = engine.run(_quote(), summary, growth=growth).method("DFCF-20")

    assert dfcf.value == pytest.approx(216.94, rel=1e-3)
    assert dfcf.inputs["Growth Rate (Year 1-5)"].source == MANUAL


def test_free_cash_flow_bridge_subtracts_debt_and_adds_cash():
    engine = ValuationEngine()
    base = engine.run(_quote(), FinancialsSummary(free_cashflow=15e9, fcf_growth=0.08)).method("DFCF-20")
    bridged = engine.run(
        _quote(), FinancialsSummary(free_cashflow=15e9, fcf_growth=0.08, total_debt=5e9, total_cash=2e9)
    ).method("DFCF-20")

    assert bridged.value == pytest.approx(base.value - 3.0)


def test_discounted_methods_increase_with_growth():
    engine = ValuationEngine()
    values = {name: [] for name in ("DCF-20", "DFCF-20", "DNI-20", "DFCF-Terminal")}
    for growth in (0.02, 0.05, 0.10, 0.20):
        summary = FinancialsSummary(
            operating_cashflow=20e9,
            free_cashflow=15e9,
            net_income=12e9,
            cashflow_growth=growth,
            fcf_growth=growth,
            earnings_growth=growth,
        )
        valuation = engine.run(_quote(), summary)
        for name in values:
            values[name].append(valuation.method(name).value)

    for series in values.values():
        assert all(a < b for a, b in zip(series, series[1:]))


def test_growth_is_clamped():
    engine = ValuationEngine()
    capped = engine.run(_quote(), FinancialsSummary(free_cashflow=1e9, fcf_growth=0.5)).method("DFCF-20")
    extreme = engine.run(_quote(), FinancialsSummary(free_cashflow=1e9, fcf_growth=3.0)).method("DFCF-20")

    assert extreme.value == pytest.approx(capped.value)


def test_missing_equity_keeps_mean_pb_with_low_confidence():
    engine = ValuationEngine()

    pb = engine.run(_quote(), FinancialsSummary(revenue=50e9, net_income=10e9)).method("Mean P/B")

    assert pb is not None
    assert pb.confidence == LOW
    assert pb.missing_data == "Shareholder Equity required"


def test_manual_equity_fills_mean_pb():
    engine = ValuationEngine()
    overrides = ManualOverrides(shareholder_equity=2e9)

    pb = engine.run(_quote(), FinancialsSummary(), overrides=overrides).method("Mean P/B")

    assert pb.value == pytest.approx(3.0 * 2.0)  # default P/B x equity per share
    assert pb.missing_data is None
    assert pb.inputs["Shareholder Equity"].source == MANUAL


def test_mean_pe_multiple_is_capped():
    engine = ValuationEngine()

    pe = engine.run(
        _quote(), FinancialsSummary(net_income=1e9), historical=HistoricalMultiples(price_to_earnings=40.0)
    ).method("Mean P/E")

    assert pe.value == pytest.approx(30.0)
    assert pe.confidence == HIGH


def test_mean_pe_needs_positive_earnings():
    engine = ValuationEngine()
    summary = FinancialsSummary(revenue=1000.0, net_income=-200.0)

    valuation = engine.run(_quote(price=20.0, shares=100.0), summary)
    pe = valuation.method("Mean P/E")

    assert pe.value == 0.0
    assert pe.confidence == LOW
    assert pe.missing_data == "Positive earnings required"
    others = [v for v in valuation.valuations if v.method != "Mean P/E"]
    assert valuation.average_intrinsic_value == pytest.approx(engine.aggregate(others, 20.0)[0])


def test_mean_pe_ignores_non_positive_historical_multiple():
    pe = ValuationEngine().run(
        _quote(), FinancialsSummary(net_income=1e9), historical=HistoricalMultiples(price_to_earnings=-12.0)
    ).method("Mean P/E")

    assert pe.value == pytest.approx(25.0)  # default P/E x EPS of 1.0
    assert pe.missing_data is None


def test_operating_cash_flow_derived_from_fcf_and_capex():
    engine = ValuationEngine()
    summary = FinancialsSummary(free_cashflow=10e9, capital_expenditures=5e9)

    dcf = engine.run(_quote(), summary).method("DCF-20")

    assert dcf.missing_data is None
    assert dcf.inputs["Operating Cash Flow"].value == 15e9
    assert "operating_cashflow" not in engine.missing_data_fields(_quote(), summary)


def test_peg_defaults_to_fair_ratio_without_growth():
    peg = ValuationEngine().run(_quote(pe_ratio=20.0), FinancialsSummary()).method("PEG Ratio")

    assert peg.value == pytest.approx(150.0)
    assert peg.confidence == LOW
    assert peg.missing_data == "Earnings Growth Rate required"


def test_peg_from_pe_and_growth():
    engine = ValuationEngine()

    fair = engine.run(_quote(pe_ratio=20.0), FinancialsSummary(earnings_growth=0.20)).method("PEG Ratio")
    cheap = engine.run(_quote(pe_ratio=20.0), FinancialsSummary(earnings_growth=0.25)).method("PEG Ratio")

    assert fair.value == pytest.approx(150.0)
    assert cheap.value == pytest.approx(150.0 * 1.25)
    assert cheap.confidence == MEDIUM and cheap.missing_data is None


def test_psg_ratio():
    engine = ValuationEngine()

    psg = engine.run(_quote(), FinancialsSummary(price_to_sales=5.0, revenue_growth=0.10)).method("PSG Ratio")
    missing = engine.run(_quote(), FinancialsSummary(price_to_sales=5.0)).method("PSG Ratio")

    assert psg.value == pytest.approx(300.0)
    assert psg.missing_data is None
    assert missing.value == pytest.approx(150.0)
    assert missing.missing_data == "Revenue Growth Rate required"


def test_categorize_levels():
    categorize = ValuationEngine.categorize

    assert categorize(70.0, 100.0, HIGH).level == "highly_undervalued"
    assert categorize(85.0, 100.0, HIGH).level == "undervalued"
    assert categorize(90.0, 100.0, HIGH).level == "fairly_valued"
    assert categorize(110.0, 100.0, HIGH).level == "fairly_valued"
    assert categorize(115.0, 100.0, HIGH).level == "overvalued"
    assert categorize(130.0, 100.0, HIGH).level == "highly_overvalued"
    assert categorize(85.0, 100.0, MEDIUM).discount_premium_percent == pytest.approx(-15.0)
    with pytest.raises(ValueError):
        categorize(100.0, 0.0, LOW)


def test_composite_confidence():
    engine = ValuationEngine()
    strong = [_result(1.0, HIGH), _result(2.0, HIGH), _result(3.0, MEDIUM), _result(4.0, LOW)]

    assert engine.composite_fair_value(strong, 1.0).confidence == HIGH
    assert engine.composite_fair_value(strong[2:], 1.0).confidence == MEDIUM
    assert engine.composite_fair_value(strong[:1], 1.0).confidence == LOW
    assert engine.composite_fair_value([], 7.0).fair_value == 7.0


def test_calculate_wacc():
    engine = ValuationEngine()

    assert engine.calculate_wacc(1.0, 0.0) == pytest.approx(0.10)
    assert engine.calculate_wacc(1.2, 0.5, tax_rate=0.21) == pytest.approx(0.0852, abs=1e-4)


def test_sector_relative_value():
    relative = ValuationEngine.sector_relative_value(30.0, "Technology")

    assert relative.sector_median_pe == 25.0
    assert relative.relative_value == pytest.approx(120.0)
    assert ValuationEngine.sector_relative_value(9.0, "Shipping").sector_median_pe == 18.0
    assert ValuationEngine.sector_relative_value(None, "Technology") is None
    assert ValuationEngine.sector_relative_value(-5.0, "Technology") is None
    assert ValuationEngine.sector_relative_value(20.0, None) is None


def test_missing_data_fields_lists_manual_inputs():
    fields = ValuationEngine().missing_data_fields(_quote(), FinancialsSummary())

    assert set(fields) == {"operating_cashflow", "shareholder_equity", "earnings_growth", "peg_ratio"}


def test_data_confidence_levels():
    engine = ValuationEngine()
    full = FinancialsSummary(
        revenue=100.0,
        net_income=10.0,
        operating_cashflow=20.0,
        free_cashflow=15.0,
        shareholder_equity=50.0,
        total_debt=5.0,
        earnings_growth=0.1,
    )

    assert engine.data_confidence(full) == HIGH
    assert engine.data_confidence(FinancialsSummary(revenue=1.0)) == LOW


def test_missing_shares_defaults_to_one_with_warning():
    valuation = ValuationEngine().run(Quote(symbol="TEST", price=10.0), FinancialsSummary(revenue=100.0))

    assert valuation.warnings
    assert valuation.method("Mean P/S").value == pytest.approx(500.0)


def test_invalid_inputs_raise():
    engine = ValuationEngine()

    with pytest.raises(ValueError):
        engine.run(_quote(price=0.0), FinancialsSummary())
    with pytest.raises(ValueError):
        engine.run(_quote(), FinancialsSummary(), growth=GrowthOverrides(discount_rate=0.03))
    with pytest.raises(ValueError):
        ValuationConfig(discount_rate=0.03)
    with pytest.raises(ValueError):
        ValuationConfig(weights={HIGH: 3.0, MEDIUM: 0.0, LOW: 1.0})
