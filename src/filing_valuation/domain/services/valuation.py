"""Multi-method intrinsic value engine.

Nine estimators are always produced:
- DCF-20, DFCF-20, DNI-20: 20-year three-phase discounted flows (no terminal value)
- DFCF-Terminal: five years of growth then a Gordon growth terminal value
- Mean P/S, Mean P/E, Mean P/B: historical multiple times current metric
- PSG Ratio, PEG Ratio: growth-adjusted multiples with a fair ratio of 1.0

A missing input never removes a method. The method is computed from a neutral
default, its confidence drops to ``low`` and ``missing_data`` names the input,
which also excludes it from the confidence-weighted average.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from filing_valuation.domain.models.valuation import (
    FAIR,
    HIGH,
    LOW,
    MEDIUM,
    OVERVALUED,
    UNDERVALUED,
    CalculationStep,
    ComprehensiveValuation,
    CompositeFairValue,
    FinancialsSummary,
    GrowthOverrides,
    HistoricalMultiples,
    ManualOverrides,
    MissingField,
    Quote,
    SectorRelativeValue,
    ValuationCategory,
    ValuationConfig,
    ValuationInput,
    ValuationResult,
)

logger = logging.getLogger(__name__)

REPORTED = "reported"
CALCULATED = "calculated"
MANUAL = "manual"
DEFAULT = "default"

FAIR_GROWTH_RATIO = 1.0
RECOMMENDATION_THRESHOLD = 20.0
DEFAULT_TAX_RATE = 0.21
DEFAULT_COST_OF_DEBT = 0.04

MARKET_MEDIAN_PE = 18.0
SECTOR_MEDIAN_PE = {
    "Technology": 25.0,
    "Financials": 12.0,
    "Healthcare": 20.0,
    "Consumer Discretionary": 18.0,
    "Consumer Staples": 22.0,
    "Energy": 14.0,
    "Materials": 16.0,
    "Industrials": 18.0,
    "Utilities": 17.0,
    "Real Estate": 19.0,
    "Communication Services": 20.0,
}


@dataclass(frozen=True)
class GrowthPath:
    """Growth rates for the three projection phases plus the discount rate."""

    near: float
    mid: float
    late: float
    discount_rate: float


@dataclass(frozen=True)
class Projection:
    present_value: float
    year_5: float
    year_10: float
    year_20: float


def project_discounted_flows(base: float, path: GrowthPath, config: ValuationConfig) -> Projection:
    """Present value of a three-phase growth projection without terminal value."""
    total_pv = 0.0
    flow = base
    checkpoints: Dict[int, float] = {}
    for year in range(1, config.projection_years + 1):
        if year <= config.explicit_years:
            rate = path.near
        elif year <= config.decay_years:
            rate = path.mid
        else:
            rate = path.late
        flow *= 1.0 + rate
        total_pv += flow / (1.0 + path.discount_rate) ** year
        checkpoints[year] = flow
    return Projection(
        present_value=total_pv,
        year_5=checkpoints[config.explicit_years],
        year_10=checkpoints[config.decay_years],
        year_20=checkpoints[config.projection_years],
    )


def gordon_terminal_value(
    base: float, growth: float, terminal_growth: float, discount_rate: float, years: int
) -> Tuple[float, float, float]:
    """Return ``(year_n_flow, terminal_value, present_value)``."""
    if discount_rate <= terminal_growth:
        raise ValueError("discount rate must exceed terminal growth")
    projected = base * (1.0 + growth) ** years
    terminal = projected * (1.0 + terminal_growth) / (discount_rate - terminal_growth)
    return projected, terminal, terminal / (1.0 + discount_rate) ** years


@dataclass(frozen=True)
class _Sourced:
    value: Optional[float]
    source: str

    @property
    def present(self) -> bool:
        return self.value is not None


def _first(*candidates: Tuple[Optional[float], str]) -> _Sourced:
    for value, source in candidates:
        if value is not None:
            return _Sourced(float(value), source)
    return _Sourced(None, DEFAULT)


class ValuationEngine:
    """Compute nine fair-value estimates and their confidence-weighted aggregate."""

    def __init__(self, config: Optional[ValuationConfig] = None) -> None:
        self.config = config or ValuationConfig()

    def run(
        self,
        quote: Quote,
        summary: Optional[FinancialsSummary] = None,
        *,
        overrides: Optional[ManualOverrides] = None,
        growth: Optional[GrowthOverrides] = None,
        historical: Optional[HistoricalMultiples] = None,
    ) -> ComprehensiveValuation:
        if quote.price is None or quote.price <= 0:
            raise ValueError(f"current price must be positive, got {quote.price!r}")
        summary = summary or FinancialsSummary()
        overrides = overrides or ManualOverrides()
        growth = growth or GrowthOverrides()
        historical = historical or HistoricalMultiples()
        warnings: List[str] = []

        shares = _first(
            (quote.shares_outstanding if quote.shares_outstanding and quote.shares_outstanding > 0 else None, REPORTED),
            (summary.shares_outstanding if summary.shares_outstanding and summary.shares_outstanding > 0 else None, REPORTED),
        )
        if not shares.present:
            warnings.append("Shares outstanding unavailable; per-share values assume 1 share.")
            shares = _Sourced(1.0, DEFAULT)

        discount_rate = growth.discount_rate if growth.discount_rate is not None else self.config.discount_rate
        if discount_rate <= self.config.terminal_growth:
            raise ValueError(
                f"discount rate {discount_rate:.2%} must exceed terminal growth {self.config.terminal_growth:.2%}"
            )
        ctx = _RunContext(
            price=float(quote.price),
            shares=shares,
            discount_rate=discount_rate,
            quote=quote,
            summary=summary,
            overrides=overrides,
            growth=growth,
            historical=historical,
        )

        valuations = [
            self._dcf_20(ctx),
            self._dfcf_20(ctx),
            self._dni_20(ctx),
            self._dfcf_terminal(ctx),
            self._mean_ps(ctx),
            self._mean_pe(ctx),
            self._mean_pb(ctx),
            self._psg(ctx),
            self._peg(ctx),
        ]
        average, upside, recommendation = self.aggregate(valuations, ctx.price)
        missing = [v.method for v in valuations if v.missing_data]
        if missing:
            logger.info("Methods running on defaults for %s: %s", quote.symbol, ", ".join(missing))
        return ComprehensiveValuation(
            current_price=ctx.price,
            average_intrinsic_value=average,
            upside_percent=upside,
            valuations=valuations,
            recommendation=recommendation,
            calculated_at=datetime.now(timezone.utc),
            warnings=warnings,
        )

    # ----------------------------
    # Aggregation and classification
    # ----------------------------

    def aggregate(self, valuations: Iterable[ValuationResult], current_price: float) -> Tuple[float, float, str]:
        """Return ``(average_intrinsic_value, upside_percent, recommendation)``."""
        composite = self.composite_fair_value(valuations, current_price)
        upside = (composite.fair_value - current_price) / current_price * 100.0
        if upside > RECOMMENDATION_THRESHOLD:
            recommendation = UNDERVALUED
        elif upside < -RECOMMENDATION_THRESHOLD:
            recommendation = OVERVALUED
        else:
            recommendation = FAIR
        return composite.fair_value, upside, recommendation

    def composite_fair_value(self, valuations: Iterable[ValuationResult], current_price: float) -> CompositeFairValue:
        valid = [v for v in valuations if not v.missing_data]
        if not valid:
            return CompositeFairValue(fair_value=current_price, confidence=LOW, methods_used=0)
        weights = [self.config.weight(v.confidence) for v in valid]
        fair_value = sum(v.value * w for v, w in zip(valid, weights)) / sum(weights)
        high_count = sum(1 for v in valid if v.confidence == HIGH)
        if len(valid) >= 4 and high_count >= 2:
            confidence = HIGH
        elif len(valid) >= 2:
            confidence = MEDIUM
        else:
            confidence = LOW
        return CompositeFairValue(fair_value=fair_value, confidence=confidence, methods_used=len(valid))

    @staticmethod
    def categorize(current_price: float, fair_value: float, confidence: str) -> ValuationCategory:
        if fair_value == 0:
            raise ValueError("fair value must be non-zero to compute a discount or premium")
        discount_premium = (current_price - fair_value) / fair_value * 100.0
        if discount_premium < -20:
            level = "highly_undervalued"
        elif discount_premium < -10:
            level = "undervalued"
        elif discount_premium <= 10:
            level = "fairly_valued"
        elif discount_premium <= 20:
            level = "overvalued"
        else:
            level = "highly_overvalued"
        return ValuationCategory(
            level=level,
            discount_premium_percent=discount_premium,
            confidence=confidence,
            fair_value=fair_value,
            current_price=current_price,
        )

    def category_for(self, valuation: ComprehensiveValuation) -> ValuationCategory:
        composite = self.composite_fair_value(valuation.valuations, valuation.current_price)
        return self.categorize(valuation.current_price, composite.fair_value, composite.confidence)

    # ----------------------------
    # Input diagnostics
    # ----------------------------

    def missing_data_fields(
        self,
        quote: Quote,
        summary: FinancialsSummary,
        overrides: Optional[ManualOverrides] = None,
    ) -> Dict[str, MissingField]:
        """Manual inputs that would replace a default in the current run."""
        overrides = overrides or ManualOverrides()
        fields: Dict[str, MissingField] = {}
        has_ocf = (
            overrides.operating_cashflow is not None
            or summary.operating_cashflow is not None
            or (summary.free_cashflow is not None and summary.capital_expenditures is not None)
        )
        if not has_ocf:
            fields["operating_cashflow"] = MissingField(
                "Operating Cash Flow (needed for DCF-20)", summary.free_cashflow
            )
        if overrides.shareholder_equity is None and summary.shareholder_equity is None:
            fields["shareholder_equity"] = MissingField("Shareholder Equity / Book Value (needed for Mean P/B)")
        has_growth = bool(overrides.earnings_growth) or (summary.earnings_growth or 0) > 0
        has_peg = overrides.peg_ratio is not None or (summary.peg_ratio or quote.peg_ratio) is not None
        if not has_growth and not has_peg:
            fields["earnings_growth"] = MissingField("Earnings Growth Rate % (needed for PEG Ratio)")
            fields["peg_ratio"] = MissingField("PEG Ratio (alternative input for PEG Ratio)", quote.peg_ratio)
        return fields

    def data_confidence(self, summary: FinancialsSummary) -> str:
        """Score how complete the summary is for valuation purposes."""
        score = 0
        score += 2 if summary.free_cashflow else 0
        score += 2 if summary.operating_cashflow else 0
        score += 1 if summary.revenue else 0
        score += 1 if summary.net_income else 0
        score += 1 if summary.shareholder_equity else 0
        score += 1 if summary.total_debt is not None else 0
        score += 1 if summary.net_income and summary.revenue and summary.net_income > 0 else 0
        score += 1 if summary.earnings_growth is not None else 0
        if score >= 8:
            return HIGH
        if score >= 5:
            return MEDIUM
        return LOW

    def calculate_wacc(
        self,
        beta: float,
        debt_to_equity: float,
        tax_rate: float = DEFAULT_TAX_RATE,
        cost_of_debt: float = DEFAULT_COST_OF_DEBT,
    ) -> float:
        """Weighted average cost of capital with a CAPM cost of equity."""
        if debt_to_equity < 0:
            raise ValueError("debt_to_equity must be non-negative")
        cost_of_equity = self.config.risk_free_rate + beta * (self.config.market_return - self.config.risk_free_rate)
        equity_weight = 1.0 / (1.0 + debt_to_equity)
        debt_weight = debt_to_equity / (1.0 + debt_to_equity)
        return equity_weight * cost_of_equity + debt_weight * cost_of_debt * (1.0 - tax_rate)

    @staticmethod
    def sector_relative_value(pe_ratio: Optional[float], sector: Optional[str]) -> Optional[SectorRelativeValue]:
        """Compare a P/E with its sector median; unknown sectors use the market median."""
        if not pe_ratio or pe_ratio <= 0 or not sector:
            return None
        median = SECTOR_MEDIAN_PE.get(sector, MARKET_MEDIAN_PE)
        return SectorRelativeValue(sector=sector, sector_median_pe=median, relative_value=pe_ratio / median * 100.0)

    # ----------------------------
    # Discounted flow methods
    # ----------------------------

    def _growth_path(self, ctx: "_RunContext", base_growth: _Sourced, default_growth: float) -> Tuple[GrowthPath, str]:
        cfg = self.config
        raw = base_growth.value if base_growth.present else default_growth
        near = _clamp(raw, cfg.growth_cap)
        source = base_growth.source if base_growth.present else DEFAULT
        if ctx.growth.growth_1_to_5 is not None:
            near, source = ctx.growth.growth_1_to_5, MANUAL
        mid = ctx.growth.growth_6_to_10 if ctx.growth.growth_6_to_10 is not None else near * cfg.growth_decay
        late = ctx.growth.growth_11_to_20 if ctx.growth.growth_11_to_20 is not None else cfg.long_run_growth
        return GrowthPath(near=near, mid=mid, late=late, discount_rate=ctx.discount_rate), source

    def _discounted_method(
        self,
        ctx: "_RunContext",
        *,
        method: str,
        description: str,
        metric_label: str,
        metric: _Sourced,
        growth: _Sourced,
        default_growth: float,
        confidence: str,
        bridge: bool,
    ) -> ValuationResult:
        base = metric.value if metric.present else 0.0
        path, growth_source = self._growth_path(ctx, growth, default_growth)
        projection = project_discounted_flows(base, path, self.config)
        debt = (ctx.summary.total_debt or 0.0) if bridge else 0.0
        cash = (ctx.summary.total_cash or 0.0) if bridge else 0.0
        equity_value = projection.present_value - debt + cash
        per_share = equity_value / ctx.shares.value  # type: ignore[operator]

        inputs = {
            metric_label: ValuationInput(base, "USD", metric.source, f"Latest {metric_label.lower()}"),
            "Growth Rate (Year 1-5)": ValuationInput(path.near, "rate", growth_source),
            "Growth Rate (Year 6-10)": ValuationInput(path.mid, "rate", MANUAL if ctx.growth.growth_6_to_10 is not None else CALCULATED),
            "Growth Rate (Year 11-20)": ValuationInput(path.late, "rate", MANUAL if ctx.growth.growth_11_to_20 is not None else DEFAULT),
            "Discount Rate": ValuationInput(path.discount_rate, "rate", MANUAL if ctx.growth.discount_rate is not None else DEFAULT),
            "Shares Outstanding": ValuationInput(ctx.shares.value or 1.0, "shares", ctx.shares.source),
        }
        steps = [
            CalculationStep(1, "Years 1-5: high growth phase", f"CF x (1 + {path.near:.1%})^5", projection.year_5),
            CalculationStep(2, "Years 6-10: moderate growth", f"Year 5 CF x (1 + {path.mid:.1%})^5", projection.year_10),
            CalculationStep(3, "Years 11-20: mature growth", f"Year 10 CF x (1 + {path.late:.1%})^10", projection.year_20),
            CalculationStep(4, "Present value of 20 years", f"sum(CF_t / (1 + {path.discount_rate:.1%})^t)", projection.present_value),
        ]
        formula = "Value = sum(CF_t / (1 + r)^t) / Shares"
        if bridge:
            inputs["Total Debt"] = ValuationInput(debt, "USD", REPORTED if ctx.summary.total_debt is not None else DEFAULT)
            inputs["Total Cash"] = ValuationInput(cash, "USD", REPORTED if ctx.summary.total_cash is not None else DEFAULT)
            steps.append(CalculationStep(5, "Equity value", "Enterprise value - Debt + Cash", equity_value))
            formula = "Equity Value = (sum(FCF_t / (1 + r)^t) - Total Debt + Cash) / Shares"
        steps.append(CalculationStep(len(steps) + 1, "Per share value", "Equity value / Shares", per_share))

        return ValuationResult(
            method=method,
            value=per_share,
            confidence=confidence if metric.present else LOW,
            description=description,
            formula=formula,
            missing_data=None if metric.present else f"{metric_label} required",
            inputs=inputs,
            steps=steps,
        )

    def _dcf_20(self, ctx: "_RunContext") -> ValuationResult:
        return self._discounted_method(
            ctx,
            method="DCF-20",
            description="Discounted Cash Flow 20-year",
            metric_label="Operating Cash Flow",
            metric=ctx.operating_cashflow(),
            growth=_first((ctx.summary.cashflow_growth, CALCULATED)),
            default_growth=self.config.default_cashflow_growth,
            confidence=HIGH,
            bridge=False,
        )

    def _dfcf_20(self, ctx: "_RunContext") -> ValuationResult:
        return self._discounted_method(
            ctx,
            method="DFCF-20",
            description="Discounted Free Cash Flow 20-year",
            metric_label="Free Cash Flow",
            metric=_first((ctx.summary.free_cashflow, REPORTED)),
            growth=_first((ctx.summary.fcf_growth, CALCULATED)),
            default_growth=self.config.default_fcf_growth,
            confidence=HIGH,
            bridge=True,
        )

    def _dni_20(self, ctx: "_RunContext") -> ValuationResult:
        return self._discounted_method(
            ctx,
            method="DNI-20",
            description="Discounted Net Income 20-year",
            metric_label="Net Income",
            metric=_first((ctx.summary.net_income, REPORTED)),
            growth=_first((ctx.summary.earnings_growth, CALCULATED)),
            default_growth=self.config.default_earnings_growth,
            confidence=MEDIUM,
            bridge=False,
        )

    def _dfcf_terminal(self, ctx: "_RunContext") -> ValuationResult:
        cfg = self.config
        fcf = _first((ctx.summary.free_cashflow, REPORTED))
        base = fcf.value if fcf.present else 0.0
        path, growth_source = self._growth_path(ctx, _first((ctx.summary.fcf_growth, CALCULATED)), cfg.default_fcf_growth)
        projected, terminal, present = gordon_terminal_value(
            base, path.near, cfg.terminal_growth, path.discount_rate, cfg.explicit_years
        )
        debt = ctx.summary.total_debt or 0.0
        cash = ctx.summary.total_cash or 0.0
        equity_value = present - debt + cash
        per_share = equity_value / ctx.shares.value  # type: ignore[operator]
        return ValuationResult(
            method="DFCF-Terminal",
            value=per_share,
            confidence=MEDIUM if fcf.present else LOW,
            description="Discounted FCF Terminal Value",
            formula="TV = FCF_5 x (1 + g) / (r - g); Equity = TV / (1 + r)^5 - Debt + Cash",
            missing_data=None if fcf.present else "Free Cash Flow required",
            inputs={
                "Free Cash Flow": ValuationInput(base, "USD", fcf.source),
                "Growth Rate (Year 1-5)": ValuationInput(path.near, "rate", growth_source),
                "Terminal Growth": ValuationInput(cfg.terminal_growth, "rate", DEFAULT),
                "Discount Rate": ValuationInput(path.discount_rate, "rate", MANUAL if ctx.growth.discount_rate is not None else DEFAULT),
                "Total Debt": ValuationInput(debt, "USD", REPORTED if ctx.summary.total_debt is not None else DEFAULT),
                "Total Cash": ValuationInput(cash, "USD", REPORTED if ctx.summary.total_cash is not None else DEFAULT),
                "Shares Outstanding": ValuationInput(ctx.shares.value or 1.0, "shares", ctx.shares.source),
            },
            steps=[
                CalculationStep(1, "Year 5 FCF projection", f"FCF x (1 + {path.near:.1%})^5", projected),
                CalculationStep(
                    2,
                    "Terminal value (year 6+)",
                    f"FCF_5 x (1 + {cfg.terminal_growth:.1%}) / ({path.discount_rate:.1%} - {cfg.terminal_growth:.1%})",
                    terminal,
                ),
                CalculationStep(3, "Present value (enterprise)", f"TV / (1 + {path.discount_rate:.1%})^5", present),
                CalculationStep(4, "Equity value", "Enterprise value - Debt + Cash", equity_value),
                CalculationStep(5, "Per share value", "Equity value / Shares", per_share),
            ],
        )

    # ----------------------------
    # Multiple-based methods
    # ----------------------------

    def _multiple_method(
        self,
        ctx: "_RunContext",
        *,
        method: str,
        description: str,
        metric_label: str,
        metric: _Sourced,
        multiple_label: str,
        multiple: _Sourced,
        confidence: str,
        missing: Optional[str] = None,
    ) -> ValuationResult:
        if missing is None and not metric.present:
            missing = f"{metric_label} required"
        base = metric.value if missing is None else 0.0
        shares = ctx.shares.value or 1.0
        per_share_metric = base / shares  # type: ignore[operator]
        per_share = multiple.value * per_share_metric  # type: ignore[operator]
        return ValuationResult(
            method=method,
            value=per_share,
            confidence=LOW if missing else confidence,
            description=description,
            formula=f"Fair Value = {multiple_label} x {metric_label} / Shares",
            missing_data=missing,
            inputs={
                metric_label: ValuationInput(base, "USD", metric.source),
                multiple_label: ValuationInput(multiple.value or 0.0, "multiple", multiple.source),
                "Shares Outstanding": ValuationInput(shares, "shares", ctx.shares.source),
                "Current Price": ValuationInput(ctx.price, "USD", REPORTED),
            },
            steps=[
                CalculationStep(1, f"{metric_label} per share", f"{metric_label} / Shares", per_share_metric),
                CalculationStep(2, "Implied market cap", f"{multiple_label} x {metric_label}", multiple.value * base),  # type: ignore[operator]
                CalculationStep(3, "Fair value per share", "Implied market cap / Shares", per_share),
            ],
        )

    def _mean_ps(self, ctx: "_RunContext") -> ValuationResult:
        multiple = _first(
            (ctx.historical.price_to_sales, REPORTED),
            (self.config.default_ps, DEFAULT),
        )
        return self._multiple_method(
            ctx,
            method="Mean P/S",
            description="Mean Price to Sales Ratio",
            metric_label="Revenue",
            metric=_first((ctx.summary.revenue, REPORTED)),
            multiple_label="Historical P/S",
            multiple=multiple,
            confidence=MEDIUM,
        )

    def _mean_pe(self, ctx: "_RunContext") -> ValuationResult:
        historical_pe = ctx.historical.price_to_earnings
        multiple = _first(
            (historical_pe if (historical_pe or 0) > 0 else None, REPORTED),
            (self.config.default_pe, DEFAULT),
        )
        multiple = _Sourced(min(multiple.value, self.config.pe_cap), multiple.source)  # type: ignore[type-var]
        net_income = _first((ctx.summary.net_income, REPORTED))
        # P/E is only defined on positive earnings.
        missing = "Positive earnings required" if net_income.present and net_income.value <= 0 else None  # type: ignore[operator]
        return self._multiple_method(
            ctx,
            method="Mean P/E",
            description="Mean Price to Earnings Ratio",
            metric_label="Net Income",
            metric=net_income,
            multiple_label="Historical P/E",
            multiple=multiple,
            confidence=HIGH,
            missing=missing,
        )

    def _mean_pb(self, ctx: "_RunContext") -> ValuationResult:
        multiple = _first(
            (ctx.historical.price_to_book, REPORTED),
            (self.config.default_pb, DEFAULT),
        )
        return self._multiple_method(
            ctx,
            method="Mean P/B",
            description="Mean Price to Book Ratio",
            metric_label="Shareholder Equity",
            metric=_first(
                (ctx.overrides.shareholder_equity, MANUAL),
                (ctx.summary.shareholder_equity, REPORTED),
            ),
            multiple_label="Historical P/B",
            multiple=multiple,
            confidence=MEDIUM,
        )

    # ----------------------------
    # Growth-adjusted ratios
    # ----------------------------

    def _psg(self, ctx: "_RunContext") -> ValuationResult:
        ps = _first((ctx.summary.price_to_sales if (ctx.summary.price_to_sales or 0) > 0 else None, CALCULATED))
        revenue_growth = ctx.summary.revenue_growth
        growth = _first((revenue_growth if revenue_growth is not None and revenue_growth > 0 else None, CALCULATED))

        missing: Optional[str] = None
        if not ps.present:
            missing = "P/S Ratio required"
        elif not growth.present:
            missing = "Revenue Growth Rate required"

        if missing is None:
            growth_pct = growth.value * 100.0  # type: ignore[operator]
            psg_ratio = ps.value / growth_pct  # type: ignore[operator]
            implied_ps = FAIR_GROWTH_RATIO * growth_pct
            adjustment = implied_ps / ps.value  # type: ignore[operator]
        else:
            growth_pct = 0.0
            psg_ratio = FAIR_GROWTH_RATIO
            implied_ps = ps.value or 0.0
            adjustment = 1.0
        value = adjustment * ctx.price
        return ValuationResult(
            method="PSG Ratio",
            value=value,
            confidence=LOW,
            description="Price to Sales Growth Ratio",
            formula="PSG = P/S Ratio / (Revenue Growth x 100); Fair Value = Price x Fair P/S / P/S",
            missing_data=missing,
            inputs={
                "Current Price": ValuationInput(ctx.price, "USD", REPORTED),
                "P/S Ratio": ValuationInput(ps.value or 0.0, "multiple", ps.source),
                "Revenue Growth Rate": ValuationInput(growth.value or 0.0, "rate", growth.source),
                "Fair PSG Ratio": ValuationInput(FAIR_GROWTH_RATIO, "ratio", DEFAULT),
            },
            steps=[
                CalculationStep(1, "Current PSG ratio", f"P/S / (Growth x 100) = {ps.value or 0.0:.1f} / {growth_pct:.1f}", psg_ratio),
                CalculationStep(2, "Fair P/S ratio", f"Fair PSG x Growth x 100 = {FAIR_GROWTH_RATIO} x {growth_pct:.1f}", implied_ps),
                CalculationStep(3, "Valuation adjustment", "Fair P/S / Current P/S", adjustment),
                CalculationStep(4, "Fair value", f"Current price x adjustment = {ctx.price:.2f} x {adjustment:.2f}", value),
            ],
        )

    def _peg(self, ctx: "_RunContext") -> ValuationResult:
        pe = _first(
            (ctx.quote.pe_ratio if (ctx.quote.pe_ratio or 0) > 0 else None, REPORTED),
            (ctx.summary.pe_ratio if (ctx.summary.pe_ratio or 0) > 0 else None, CALCULATED),
        )
        growth = _first(
            (ctx.overrides.earnings_growth or None, MANUAL),
            (ctx.summary.earnings_growth if (ctx.summary.earnings_growth or 0) > 0 else None, CALCULATED),
        )
        peg = _first(
            (ctx.overrides.peg_ratio if (ctx.overrides.peg_ratio or 0) > 0 else None, MANUAL),
            (ctx.summary.peg_ratio if (ctx.summary.peg_ratio or 0) > 0 else None, REPORTED),
            (ctx.quote.peg_ratio if (ctx.quote.peg_ratio or 0) > 0 else None, REPORTED),
            (pe.value / (growth.value * 100.0) if pe.present and growth.present and growth.value > 0 else None, CALCULATED),  # type: ignore[operator]
        )
        if not peg.present:
            peg = _Sourced(FAIR_GROWTH_RATIO, DEFAULT)

        missing: Optional[str] = None
        if not growth.present:
            missing = "Earnings Growth Rate required"
        elif not pe.present and peg.source == DEFAULT:
            missing = "P/E Ratio required"

        adjustment = FAIR_GROWTH_RATIO / peg.value  # type: ignore[operator]
        value = adjustment * ctx.price
        implied_growth = (pe.value / peg.value) if pe.present else 0.0  # type: ignore[operator]
        return ValuationResult(
            method="PEG Ratio",
            value=value,
            confidence=LOW if missing else MEDIUM,
            description="Price to Earnings Growth Ratio",
            formula="PEG = P/E Ratio / (Earnings Growth x 100); Fair Value = Price x Fair PEG / PEG",
            missing_data=missing,
            inputs={
                "Current Price": ValuationInput(ctx.price, "USD", REPORTED),
                "P/E Ratio": ValuationInput(pe.value or 0.0, "multiple", pe.source),
                "Earnings Growth Rate": ValuationInput(growth.value or 0.0, "rate", growth.source),
                "Current PEG Ratio": ValuationInput(peg.value or FAIR_GROWTH_RATIO, "ratio", peg.source),
                "Fair PEG Ratio": ValuationInput(FAIR_GROWTH_RATIO, "ratio", DEFAULT),
            },
            steps=[
                CalculationStep(1, "Implied growth rate", f"P/E / PEG = {pe.value or 0.0:.1f} / {peg.value:.2f}", implied_growth),
                CalculationStep(2, "Fair P/E ratio", f"Fair PEG x Growth = {FAIR_GROWTH_RATIO} x {implied_growth:.1f}", FAIR_GROWTH_RATIO * implied_growth),
                CalculationStep(3, "Valuation adjustment", f"Fair PEG / Current PEG = {FAIR_GROWTH_RATIO} / {peg.value:.2f}", adjustment),
                CalculationStep(4, "Fair value", f"Current price x adjustment = {ctx.price:.2f} x {adjustment:.2f}", value),
            ],
        )


@dataclass(frozen=True)
class _RunContext:
    price: float
    shares: _Sourced
    discount_rate: float
    quote: Quote
    summary: FinancialsSummary
    overrides: ManualOverrides
    growth: GrowthOverrides
    historical: HistoricalMultiples

    def operating_cashflow(self) -> _Sourced:
        derived: Optional[float] = None
        if self.summary.free_cashflow is not None and self.summary.capital_expenditures is not None:
            derived = self.summary.free_cashflow + abs(self.summary.capital_expenditures)
        return _first(
            (self.overrides.operating_cashflow, MANUAL),
            (self.summary.operating_cashflow, REPORTED),
            (derived, CALCULATED),
        )


def _clamp(value: float, cap: float) -> float:
    return max(-cap, min(cap, value))
