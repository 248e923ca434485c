"""Workflow dependency container."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from filing_valuation.domain.services.reconstruction import StatementReconstructor
from filing_valuation.domain.services.summary import FinancialsSummarizer
from filing_valuation.domain.services.valuation import ValuationEngine
from filing_valuation.infrastructure.data_providers.local_files import JsonFactStore, JsonQuoteStore
from filing_valuation.settings.config import Config


@dataclass
class WorkflowContext:
    """Holds dependencies shared by LangGraph nodes."""

    config: Config
    fact_store: JsonFactStore
    quote_store: Optional[JsonQuoteStore]
    reconstructor: StatementReconstructor
    summarizer: FinancialsSummarizer
    valuation_engine: ValuationEngine
