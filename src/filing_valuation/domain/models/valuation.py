"""Value objects exchanged with the valuation engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

HIGH = "high"
MEDIUM = "medium"
LOW = "low"

UNDERVALUED = "undervalued"
FAIR = "fair"
OVERVALUED = "overvalued"


@dataclass(frozen=True)
class ValuationConfig:
    """Rates, defaults and weights used by every valuation method."""

    discount_rate: float = 0.10
    terminal_growth: float = 0.04
    long_run_growth: float = 0.04
    growth_cap: float = 0.50
    growth_decay: float = 0.75
    risk_free_rate: float = 0.04
    market_return: float = 0.10
    default_cashflow_growth: float = 0.08
    default_fcf_growth: float = 0.07
    default_earnings_growth: float = 0.05
    default_pe: float = 25.0
    default_ps: float = 5.0
    default_pb: float = 3.0
    pe_cap: float = 30.0
    explicit_years: int = 5
    decay_years: int = 10
    projection_years: int = 20
    weights: Dict[str, float] = field(default_factory=lambda: {HIGH: 3.0, MEDIUM: 2.0, LOW: 1.0})

    def __post_init__(self) -> None:
        if self.discount_rate <= self.terminal_growth:
            raise ValueError("discount_rate must exceed terminal_growth")
        if not 0 < self.explicit_years <= self.decay_years <= self.projection_years:
            raise ValueError("projection phases must satisfy 0 < explicit <= decay <= total years")
        if self.growth_cap <= 0:
            raise ValueError("growth_cap must be positive")
        for level in (HIGH, MEDIUM, LOW):
            if self.weights.get(level, 0.0) <= 0:
                raise ValueError(f"weight for {level!r} confidence must be positive")

    def weight(self, confidence: str) -> float:
        return self.weights.get(confidence, self.weights[LOW])


@dataclass
class Quote:
    """Market quote supplied by the quote provider."""

    symbol: str
    price: float
    shares_outstanding: Optional[float] = None
    pe_ratio: Optional[float] = None
    peg_ratio: Optional[float] = None
    eps: Optional[float] = None
    beta: Optional[float] = None


@dataclass
class FinancialsSummary:
    """Scalar inputs distilled from the reconstructed statements."""

    revenue: Optional[float] = None
    net_income: Optional[float] = None
    operating_cashflow: Optional[float] = None
    capital_expenditures: Optional[float] = None
    free_cashflow: Optional[float] = None
    total_debt: Optional[float] = None
    total_cash: Optional[float] = None
    shareholder_equity: Optional[float] = None
    shares_outstanding: Optional[float] = None
    market_cap: Optional[float] = None
    pe_ratio: Optional[float] = None
    price_to_sales: Optional[float] = None
    price_to_book: Optional[float] = None
    peg_ratio: Optional[float] = None
    revenue_growth: Optional[float] = None
    earnings_growth: Optional[float] = None
    cashflow_growth: Optional[float] = None
    fcf_growth: Optional[float] = None
    source_period: Optional[str] = None


@dataclass
class ManualOverrides:
    """Caller-supplied values for inputs the filings could not provide."""

    operating_cashflow: Optional[float] = None
    shareholder_equity: Optional[float] = None
    peg_ratio: Optional[float] = None
    earnings_growth: Optional[float] = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.operating_cashflow, self.shareholder_equity, self.peg_ratio, self.earnings_growth)
        )


@dataclass
class GrowthOverrides:
    """Custom growth path and discount rate for the cash-flow methods."""

    growth_1_to_5: Optional[float] = None
    growth_6_to_10: Optional[float] = None
    growth_11_to_20: Optional[float] = None
    discount_rate: Optional[float] = None


@dataclass
class HistoricalMultiples:
    """Average trading multiples observed over a lookback window."""

    price_to_sales: Optional[float] = None
    price_to_earnings: Optional[float] = None
    price_to_book: Optional[float] = None


@dataclass(frozen=True)
class ValuationInput:
    value: float
    unit: str
    source: str  # reported, calculated, manual or default
    description: str = ""


@dataclass(frozen=True)
class CalculationStep:
    step: int
    description: str
    formula: str
    result: float


@dataclass(frozen=True)
class ValuationResult:
    """Fair value per share produced by one method."""

    method: str
    value: float
    confidence: str
    description: str
    formula: str = ""
    missing_data: Optional[str] = None
    inputs: Dict[str, ValuationInput] = field(default_factory=dict)
    steps: List[CalculationStep] = field(default_factory=list)


@dataclass
class ComprehensiveValuation:
    current_price: float
    average_intrinsic_value: float
    upside_percent: float
    valuations: List[ValuationResult]
    recommendation: str
    calculated_at: datetime
    warnings: List[str] = field(default_factory=list)

    def method(self, name: str) -> Optional[ValuationResult]:
        for result in self.valuations:
            if result.method == name:
                return result
        return None


@dataclass(frozen=True)
class CompositeFairValue:
    fair_value: float
    confidence: str
    methods_used: int


@dataclass(frozen=True)
class ValuationCategory:
    level: str
    discount_premium_percent: float
    confidence: str
    fair_value: float
    current_price: float


@dataclass(frozen=True)
class MissingField:
    description: str
    current_value: Optional[float] = None


@dataclass(frozen=True)
class SectorRelativeValue:
    """Current P/E against the sector median; 100 means in line with the sector."""

    sector: str
    sector_median_pe: float
    relative_value: float
