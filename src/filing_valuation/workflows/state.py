"""Workflow state definitions shared by LangGraph nodes."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, TypedDict

from filing_valuation.domain.models.facts import FactMap
from filing_valuation.domain.models.financials import FinancialStatements
from filing_valuation.domain.models.valuation import (
    ComprehensiveValuation,
    FinancialsSummary,
    GrowthOverrides,
    HistoricalMultiples,
    ManualOverrides,
    MissingField,
    Quote,
    ValuationCategory,
)


class ValuationState(TypedDict, total=False):
    symbol: str
    run_date: str

    facts: FactMap
    quote: Optional[Quote]
    statements: Optional[FinancialStatements]
    quality_issues: List[str]
    summary: Optional[FinancialsSummary]

    manual_overrides: Optional[ManualOverrides]
    growth_overrides: Optional[GrowthOverrides]
    historical_multiples: Optional[HistoricalMultiples]

    valuation: Optional[ComprehensiveValuation]
    category: Optional[ValuationCategory]
    missing_fields: Dict[str, MissingField]
    data_confidence: Optional[str]
    stage_order: List[str]

    logs: List[str]
    errors: List[str]

    extras: Dict[str, Any]
