"""LangGraph node for loading reported facts."""
from __future__ import annotations

import logging

from filing_valuation.workflows.context import WorkflowContext
from filing_valuation.workflows.state import ValuationState

logger = logging.getLogger(__name__)


def run(state: ValuationState, context: WorkflowContext) -> ValuationState:
    """Populate ``facts``; a failed read degrades to an empty fact map."""
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    symbol = state["symbol"]

    logs.append(f"FactsLoad -> reading facts for {symbol}")
    try:
        facts = context.fact_store.fetch(symbol)
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning("Fact store lookup failed for %s: %s", symbol, exc)
        errors.append(f"Fact store lookup failed: {exc}")
        facts = {}
    else:
        logs.append(f"Loaded {len(facts)} concepts.")

    state["facts"] = facts
    return state
