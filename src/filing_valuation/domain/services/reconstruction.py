"""End-to-end statement reconstruction from a fact map."""
from __future__ import annotations

import logging
from typing import Dict

from filing_valuation.domain.models.facts import FactMap
from filing_valuation.domain.models.financials import FinancialStatements, StatementSet
from filing_valuation.domain.services.concepts import TEMPLATES, StatementTemplate
from filing_valuation.domain.services.periods import (
    PeriodReconciler,
    Q4Deriver,
    Quarterizer,
    TTMAggregator,
    check_quarter_sums,
)
from filing_valuation.domain.services.statements import StatementBuilder

logger = logging.getLogger(__name__)


class StatementReconstructor:
    """Run builder, reconciler, quarterizer, Q4 derivation and TTM for every statement type."""

    def __init__(
        self,
        annual_limit: int = 10,
        quarterly_limit: int = 20,
        sum_tolerance: float = 0.01,
        templates: Dict[str, StatementTemplate] = TEMPLATES,
    ) -> None:
        self._annual_limit = annual_limit
        self._quarterly_limit = quarterly_limit
        self._sum_tolerance = sum_tolerance
        self._templates = templates
        self._reconciler = PeriodReconciler()

    def reconstruct(self, symbol: str, fact_map: FactMap) -> FinancialStatements:
        builder = StatementBuilder(fact_map)
        sets = {kind: self.reconstruct_statement(builder, template) for kind, template in self._templates.items()}
        statements = FinancialStatements(symbol=symbol, **sets)
        logger.info(
            "Reconstructed %s: %s",
            symbol,
            ", ".join(
                f"{kind} {len(item.annual)}A/{len(item.quarterly)}Q{'+TTM' if item.ttm else ''}"
                for kind, item in sets.items()
            ),
        )
        return statements

    def reconstruct_statement(self, builder: StatementBuilder, template: StatementTemplate) -> StatementSet:
        raw_annual, raw_quarterly = builder.build(template)
        annual = self._reconciler.reconcile(raw_annual)
        quarterly = self._reconciler.reconcile(raw_quarterly)
        # Q4 residuals assume Q1-Q3 are already single-quarter figures.
        quarterly = Quarterizer(template).discretize(quarterly)
        quarterly = Q4Deriver(template).derive(annual, quarterly)
        issues = check_quarter_sums(template, annual, quarterly, self._sum_tolerance)
        ttm = TTMAggregator(template).aggregate(quarterly)
        return StatementSet(
            statement_type=template.statement_type,
            annual=annual[: self._annual_limit],
            quarterly=quarterly[: self._quarterly_limit],
            ttm=ttm,
            quality_issues=issues,
        )
